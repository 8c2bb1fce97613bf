import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.encryption import encrypt_secret
from app.core.repository import MongoDBRepo, get_repo
from app.core.schemas import (
    SettingsResponse,
    StoredUserSettings,
    UpdateSettingsRequest,
    UserInDB,
    UserSettings,
)
from app.core.security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


def _to_response(settings: StoredUserSettings) -> SettingsResponse:
    # Ciphertext never leaves the server; clients only see which providers have a key
    return SettingsResponse(
        settings=UserSettings(
            llm_provider=settings.llm_provider,
            llm_model=settings.llm_model,
            api_key_providers=sorted(settings.encrypted_api_keys),
        )
    )


@router.get("", response_model=SettingsResponse)
async def get_user_settings(current_user: UserInDB = Depends(get_current_user)):
    return _to_response(current_user.settings)


@router.put("", response_model=SettingsResponse)
async def update_user_settings(
    payload: UpdateSettingsRequest,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    """
    Update the generation provider/model and optionally store an API key.

    A submitted API key is encrypted and stored under the provider selected
    by this same request (or the current provider if none is sent).
    """
    current = current_user.settings
    updated = StoredUserSettings(
        llm_provider=payload.llm_provider or current.llm_provider or "mock",
        llm_model=payload.llm_model if payload.llm_model is not None else current.llm_model,
        encrypted_api_keys=dict(current.encrypted_api_keys),
    )

    if payload.api_key:
        try:
            updated.encrypted_api_keys[updated.llm_provider] = encrypt_secret(payload.api_key)
        except ValueError as e:
            logger.error(f"Failed to encrypt API key: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to store API key",
            )

    user = await repo.update_user_settings(current_user.id, updated)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return _to_response(user.settings)
