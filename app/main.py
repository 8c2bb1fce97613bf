import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.auth import router as auth_router
from app.api.routers.settings import router as settings_router
from app.api.routers.trips import router as trips_router
from app.core.csrf_middleware import CSRFProtectionMiddleware
from app.core.schemas import HealthResponse
from app.core.settings import get_settings

load_dotenv()


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    application = FastAPI(title="Trip Master API")

    # CORS: the web app origin (APP_BASE_URL) plus any ALLOWED_ORIGINS
    allowed_origins = settings.origins()

    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # CSRF Protection: Validate Origin header for state-changing requests
    application.add_middleware(CSRFProtectionMiddleware, allowed_origins=allowed_origins)

    @application.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(ok=True)

    application.include_router(auth_router)
    application.include_router(trips_router)
    application.include_router(settings_router)
    return application


app = create_app()
