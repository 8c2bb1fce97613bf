import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status

from app.core.encryption import decrypt_secret
from app.core.errors import (
    CredentialRequired,
    ExternalLookupFailed,
    GenerationFailed,
    InvalidInput,
    ProviderUnimplemented,
    ProviderUnknown,
)
from app.core.itinerary_generator import generate_itinerary_with_validation
from app.core.llm_provider import GenerateOptions
from app.core.maps_service import GoogleMapsClient
from app.core.repository import MongoDBRepo, get_repo, utcnow
from app.core.schemas import (
    AddCollaboratorRequest,
    Collaborator,
    EnrichTripRequest,
    GenerateItineraryRequest,
    RouteTripRequest,
    Trip,
    TripCreate,
    TripRole,
    TripUpdate,
    UpdateCollaboratorRequest,
    UserInDB,
)
from app.core.security import get_current_user
from app.core.settings import Settings, get_settings
from app.core.trip_maps import compute_trip_routes, enrich_trip_places
from app.core.trip_utils import (
    can_edit,
    get_user_role,
    itinerary_day_count,
    normalize_days,
    parse_optional_date,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])

# Retries after the first attempt for the generate endpoint
GENERATION_MAX_RETRIES = 1

TripId = Annotated[
    str,
    Path(min_length=1, max_length=50, pattern="^[a-zA-Z0-9_-]+$", description="Trip ID"),
]
UserId = Annotated[
    str,
    Path(
        min_length=1,
        max_length=50,
        pattern="^[a-zA-Z0-9_-]+$",
        description="Collaborator user ID",
    ),
]


def get_maps_client(settings: Settings = Depends(get_settings)) -> GoogleMapsClient:
    if not settings.google_maps_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Maps API key is not configured",
        )
    return GoogleMapsClient(settings.google_maps_api_key)


async def _load_trip(
    trip_id: str, user: UserInDB, repo: MongoDBRepo
) -> tuple[Trip, TripRole]:
    trip = await repo.get_trip(trip_id)
    if not trip:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")

    role = get_user_role(trip, user.id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return trip, role


async def _load_editable_trip(trip_id: str, user: UserInDB, repo: MongoDBRepo) -> Trip:
    trip, role = await _load_trip(trip_id, user, repo)
    if not can_edit(role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return trip


async def _load_owned_trip(trip_id: str, user: UserInDB, repo: MongoDBRepo) -> Trip:
    trip, role = await _load_trip(trip_id, user, repo)
    if role != "owner":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return trip


async def _save(trip: Trip, repo: MongoDBRepo) -> Trip:
    try:
        return await repo.save_trip(trip)
    except LookupError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")


@router.get("", response_model=list[Trip])
async def list_trips(
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    """Trips the user owns or collaborates on."""
    return await repo.list_trips_for_user(current_user.id)


@router.post("", response_model=Trip, status_code=status.HTTP_201_CREATED)
async def create_trip(
    payload: TripCreate,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    try:
        data = {
            "title": payload.title,
            "destination": payload.destination,
            "start_date": parse_optional_date(payload.start_date),
            "end_date": parse_optional_date(payload.end_date),
            "timezone": payload.timezone,
            "owner_user_id": current_user.id,
            "collaborators": [],
            "days": normalize_days(payload.days or []),
        }
    except InvalidInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        return await repo.create_trip(data)
    except Exception as e:
        logger.error(f"Failed to create trip: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create trip",
        )


@router.get("/{trip_id}", response_model=Trip)
async def get_trip(
    trip_id: TripId,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    trip, _ = await _load_trip(trip_id, current_user, repo)
    return trip


@router.put("/{trip_id}", response_model=Trip)
async def update_trip(
    payload: TripUpdate,
    trip_id: TripId,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    """
    Update trip fields. Sending days replaces the whole itinerary, which is
    then re-sorted by date and re-indexed.
    """
    trip = await _load_editable_trip(trip_id, current_user, repo)
    fields = payload.model_fields_set

    try:
        if "title" in fields and payload.title is not None:
            trip.title = payload.title
        if "destination" in fields and payload.destination is not None:
            trip.destination = payload.destination
        if "start_date" in fields:
            trip.start_date = parse_optional_date(payload.start_date)
        if "end_date" in fields:
            trip.end_date = parse_optional_date(payload.end_date)
        if "timezone" in fields:
            trip.timezone = payload.timezone
        if payload.days is not None:
            trip.days = normalize_days(payload.days)
    except InvalidInput as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return await _save(trip, repo)


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trip(
    trip_id: TripId,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    await _load_owned_trip(trip_id, current_user, repo)
    await repo.delete_trip(trip_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----------------------------------------------
# Collaborators
# ----------------------------------------------
@router.post("/{trip_id}/collaborators", response_model=Trip, status_code=status.HTTP_201_CREATED)
async def add_collaborator(
    payload: AddCollaboratorRequest,
    trip_id: TripId,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    trip = await _load_owned_trip(trip_id, current_user, repo)

    collaborator_user = await repo.get_user_by_email(payload.email)
    if not collaborator_user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if collaborator_user.id == trip.owner_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Owner already has access")
    if any(c.user_id == collaborator_user.id for c in trip.collaborators):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Collaborator already added")

    now = utcnow()
    trip.collaborators.append(
        Collaborator(
            user_id=collaborator_user.id,
            email=collaborator_user.email,
            role=payload.role,
            invited_at=now,
            accepted_at=now,
        )
    )
    return await _save(trip, repo)


@router.put("/{trip_id}/collaborators/{user_id}", response_model=Trip)
async def update_collaborator(
    payload: UpdateCollaboratorRequest,
    trip_id: TripId,
    user_id: UserId,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    trip = await _load_owned_trip(trip_id, current_user, repo)

    collaborator = next((c for c in trip.collaborators if c.user_id == user_id), None)
    if collaborator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collaborator not found")

    collaborator.role = payload.role
    return await _save(trip, repo)


@router.delete("/{trip_id}/collaborators/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_collaborator(
    trip_id: TripId,
    user_id: UserId,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
):
    trip = await _load_owned_trip(trip_id, current_user, repo)

    remaining = [c for c in trip.collaborators if c.user_id != user_id]
    if len(remaining) == len(trip.collaborators):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collaborator not found")

    trip.collaborators = remaining
    await _save(trip, repo)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----------------------------------------------
# Generation, enrichment and routing
# ----------------------------------------------
def _resolve_api_key(user: UserInDB, provider: str) -> str | None:
    encrypted = user.settings.encrypted_api_keys.get(provider)
    if not encrypted:
        return None
    try:
        return decrypt_secret(encrypted)
    except ValueError:
        logger.warning(f"Failed to decrypt API key for provider {provider}")
        return None


@router.post("/{trip_id}/generate-itinerary", response_model=Trip)
async def generate_itinerary(
    payload: GenerateItineraryRequest,
    trip_id: TripId,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
    settings: Settings = Depends(get_settings),
):
    """
    Replace the trip's itinerary with a generated one, using the requesting
    user's provider, model and stored API key.
    """
    trip = await _load_editable_trip(trip_id, current_user, repo)

    provider = current_user.settings.llm_provider or "mock"
    options = GenerateOptions(
        prompt=payload.prompt,
        model=current_user.settings.llm_model,
        day_count=itinerary_day_count(trip),
        start_date=trip.start_date.isoformat() if trip.start_date else None,
        destination=trip.destination,
        api_key=_resolve_api_key(current_user, provider),
    )

    try:
        generated_days = await generate_itinerary_with_validation(
            provider,
            options,
            max_retries=GENERATION_MAX_RETRIES,
            offline=settings.llm_offline_mode,
        )
        trip.days = normalize_days(generated_days)
    except (CredentialRequired, ProviderUnimplemented, ProviderUnknown, InvalidInput) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GenerationFailed as e:
        logger.error(f"Itinerary generation failed for trip {trip_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return await _save(trip, repo)


@router.post("/{trip_id}/enrich", response_model=Trip)
async def enrich_trip(
    trip_id: TripId,
    payload: EnrichTripRequest | None = None,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
    maps_client: GoogleMapsClient = Depends(get_maps_client),
):
    """Fill in missing item locations and reference links."""
    payload = payload or EnrichTripRequest()
    trip = await _load_editable_trip(trip_id, current_user, repo)

    try:
        result = await enrich_trip_places(trip, maps_client, payload.day_index)
    except ExternalLookupFailed as e:
        logger.error(f"Place enrichment failed for trip {trip_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    if result.updated:
        trip = await _save(trip, repo)
    return trip


@router.post("/{trip_id}/route", response_model=Trip)
async def route_trip(
    trip_id: TripId,
    payload: RouteTripRequest | None = None,
    current_user: UserInDB = Depends(get_current_user),
    repo: MongoDBRepo = Depends(get_repo),
    maps_client: GoogleMapsClient = Depends(get_maps_client),
):
    """Compute per-day routes between located items."""
    payload = payload or RouteTripRequest()
    trip = await _load_editable_trip(trip_id, current_user, repo)

    try:
        result = await compute_trip_routes(
            trip, maps_client, day_index=payload.day_index, mode=payload.mode
        )
    except ExternalLookupFailed as e:
        logger.error(f"Route computation failed for trip {trip_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    if result.updated:
        trip = await _save(trip, repo)
    return trip
