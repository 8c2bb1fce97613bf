import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_flag(key: str) -> bool:
    return os.getenv(key, "").strip().lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    mongodb_uri: str = Field(default_factory=lambda: _env("MONGODB_URI"))
    database_name: str = Field(default_factory=lambda: _env("DATABASE_NAME", "trip_master"))

    jwt_access_secret: str = Field(default_factory=lambda: _env("JWT_ACCESS_SECRET"))
    jwt_refresh_secret: str = Field(default_factory=lambda: _env("JWT_REFRESH_SECRET"))
    access_token_expire_minutes: int = Field(
        default_factory=lambda: int(_env("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
    )
    refresh_token_expire_days: int = Field(
        default_factory=lambda: int(_env("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    )
    cookie_secure: bool = Field(default_factory=lambda: _env_flag("COOKIE_SECURE"))

    app_base_url: str = Field(default_factory=lambda: _env("APP_BASE_URL", "http://localhost:5173"))
    allowed_origins: str = Field(default_factory=lambda: _env("ALLOWED_ORIGINS"))

    google_maps_api_key: str = Field(default_factory=lambda: _env("GOOGLE_MAPS_API_KEY"))
    encryption_key_base64: str = Field(default_factory=lambda: _env("ENCRYPTION_KEY_BASE64"))

    # Forces every generation request onto the mock provider
    llm_offline_mode: bool = Field(default_factory=lambda: _env_flag("LLM_OFFLINE_MODE"))
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    def origins(self) -> list[str]:
        origins = [self.app_base_url.rstrip("/")]
        origins.extend(
            origin.strip().rstrip("/")
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        )
        return origins


def get_settings() -> Settings:
    return Settings()
