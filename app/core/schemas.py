from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

TravelMode = Literal["driving", "transit", "walking"]
CollaboratorRole = Literal["editor", "viewer"]
TripRole = Literal["owner", "editor", "viewer"]
LLMProviderName = Literal["mock", "openai", "anthropic", "gemini"]


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Trip graph
# =============================================================================


class TripLink(CamelModel):
    label: str
    url: str


class TripLocation(CamelModel):
    name: str | None = None
    address: str | None = None
    place_id: str | None = Field(None, description="Google Place ID")
    # Strict so string-typed numbers from generated itineraries are rejected
    lat: float | None = Field(None, strict=True)
    lng: float | None = Field(None, strict=True)


class TripItem(CamelModel):
    id: str | None = None
    title: str
    description: str | None = None
    category: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    location: TripLocation | None = None
    links: list[TripLink] = Field(default_factory=list)
    notes: str | None = None


class TripRoute(CamelModel):
    mode: TravelMode | None = None
    polyline: str | None = None
    distance_meters: float | None = Field(None, strict=True)
    duration_seconds: float | None = Field(None, strict=True)


class TripDay(CamelModel):
    id: str | None = None
    day_index: int = Field(..., ge=0, strict=True)
    date: datetime
    items: list[TripItem]
    route: TripRoute | None = Field(None, alias="routes")


class TripDayInput(CamelModel):
    """Day as sent by clients; dates are parsed during normalisation."""

    day_index: int | None = None
    date: str
    items: list[TripItem] = Field(default_factory=list)
    route: TripRoute | None = Field(None, alias="routes")


class Collaborator(CamelModel):
    user_id: str
    email: EmailStr
    role: CollaboratorRole
    invited_at: datetime
    accepted_at: datetime | None = None


class Trip(CamelModel):
    id: str
    title: str
    destination: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    timezone: str | None = None
    owner_user_id: str
    collaborators: list[Collaborator] = Field(default_factory=list)
    days: list[TripDay] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TripCreate(CamelModel):
    title: str = Field(..., min_length=1, description="Title is required")
    destination: str = Field(..., min_length=1, description="Destination is required")
    start_date: str | None = None
    end_date: str | None = None
    timezone: str | None = None
    days: list[TripDayInput] | None = None


class TripUpdate(CamelModel):
    title: str | None = Field(None, min_length=1)
    destination: str | None = Field(None, min_length=1)
    start_date: str | None = None
    end_date: str | None = None
    timezone: str | None = None
    days: list[TripDayInput] | None = None


class AddCollaboratorRequest(CamelModel):
    email: EmailStr
    role: CollaboratorRole


class UpdateCollaboratorRequest(CamelModel):
    role: CollaboratorRole


class GenerateItineraryRequest(CamelModel):
    prompt: str = Field(..., max_length=2000)


class EnrichTripRequest(CamelModel):
    day_index: int | None = Field(None, ge=0)


class RouteTripRequest(CamelModel):
    day_index: int | None = Field(None, ge=0)
    mode: TravelMode = "driving"


# =============================================================================
# Users, authentication and settings
# =============================================================================


class User(CamelModel):
    """User as returned by the API (no password hash)."""

    id: str
    email: EmailStr
    name: str
    created_at: datetime
    updated_at: datetime


class StoredUserSettings(BaseModel):
    llm_provider: str = "mock"
    llm_model: str | None = None
    # provider -> AES-GCM ciphertext
    encrypted_api_keys: dict[str, str] = Field(default_factory=dict)


class UserInDB(User):
    password_hash: str
    settings: StoredUserSettings = Field(default_factory=StoredUserSettings)


class UserSettings(CamelModel):
    llm_provider: LLMProviderName = "mock"
    llm_model: str | None = None
    api_key_providers: list[str] = Field(
        default_factory=list, description="Providers with a stored API key"
    )


class SettingsResponse(CamelModel):
    settings: UserSettings


class UpdateSettingsRequest(CamelModel):
    llm_provider: LLMProviderName | None = None
    llm_model: str | None = Field(None, max_length=100)
    api_key: str | None = Field(None, min_length=1, max_length=500)


class AuthRegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, description="Password must be at least 8 characters")
    name: str = Field(..., min_length=1, description="Name is required")


class AuthLoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AuthResponse(CamelModel):
    user: User


class HealthResponse(BaseModel):
    ok: bool = True
