from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import aisuite as ai  # type: ignore
from pydantic import BaseModel, Field

from app.core.errors import (
    CredentialRequired,
    GenerationFailed,
    MalformedProviderResponse,
    ProviderUnimplemented,
    ProviderUnknown,
)
from app.core.trip_utils import parse_iso_datetime

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

MOCK_PROVIDER = "mock"
REMOTE_PROVIDERS = {"openai"}
UNIMPLEMENTED_PROVIDERS = {"anthropic", "gemini"}


class GenerateOptions(BaseModel):
    prompt: str = ""
    model: str | None = None
    day_count: int = Field(1, ge=1)
    start_date: str | None = None
    destination: str | None = None
    api_key: str | None = None


class LLMProviderAdapter(Protocol):
    async def generate_itinerary(self, options: GenerateOptions) -> list[Any]: ...


class MockLLMProvider:
    """Offline provider that always returns the same three-stop template per day."""

    async def generate_itinerary(self, options: GenerateOptions) -> list[dict[str, Any]]:
        if options.start_date:
            base_date = parse_iso_datetime(options.start_date)
        else:
            base_date = datetime.now(timezone.utc)
        place = options.destination or "the city"

        days: list[dict[str, Any]] = []
        for i in range(max(1, options.day_count)):
            date = base_date + timedelta(days=i)
            days.append(
                {
                    "dayIndex": i,
                    "date": date.isoformat(),
                    "items": [
                        {
                            "title": f"Morning explore {place}",
                            "notes": "Coffee and a short walk to get familiar with the area.",
                        },
                        {
                            "title": "Midday highlight",
                            "notes": "Visit a landmark and grab lunch nearby.",
                        },
                        {
                            "title": "Evening unwind",
                            "notes": "Dinner at a local spot and a relaxing stroll.",
                        },
                    ],
                }
            )
        return days


def build_system_prompt() -> str:
    return " ".join(
        [
            "You are an expert travel planner.",
            'Return ONLY JSON in the shape: { "days": [ { "dayIndex": number, '
            '"date": ISO8601 string, "items": [ { "title": string, '
            '"description"?: string, "category"?: string, "startTime"?: string, '
            '"endTime"?: string, "location"?: { "name"?: string, "address"?: string, '
            '"placeId"?: string, "lat"?: number, "lng"?: number }, '
            '"links"?: [ { "label": string, "url": string } ], "notes"?: string } ], '
            '"routes"?: { "mode"?: "driving" | "transit" | "walking", '
            '"polyline"?: string, "distanceMeters"?: number, '
            '"durationSeconds"?: number } } ] }.',
            "Dates must be ISO 8601.",
            "If a field is unknown, omit it.",
            "Do not include any extra keys or text outside the JSON.",
        ]
    )


def build_user_prompt(options: GenerateOptions) -> str:
    parts = [
        f"Destination: {options.destination or 'Unknown'}.",
        f"Day count: {options.day_count}.",
        f"Start date: {options.start_date}." if options.start_date else "",
        f"User prompt: {options.prompt}" if options.prompt else "",
    ]
    return " ".join(part for part in parts if part)


class RemoteLLMProvider:
    """
    Chat-completion backed provider (OpenAI through aisuite).

    The aisuite client is synchronous, so each request runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, api_key: str | None, provider: str = "openai", client: Any | None = None):
        if not api_key:
            raise CredentialRequired(provider)
        self.provider = provider
        if client is not None:
            self._client = client
        else:
            try:
                self._client = ai.Client({provider: {"api_key": api_key}})
            except Exception as exc:
                raise GenerationFailed(f"Failed to initialize {provider} client: {exc}") from exc

    def _model_id(self, model: str | None) -> str:
        model = model or DEFAULT_OPENAI_MODEL
        if ":" in model:
            return model
        return f"{self.provider}:{model}"

    async def generate_itinerary(self, options: GenerateOptions) -> list[Any]:
        messages = [
            {"role": "system", "content": build_system_prompt()},
            {"role": "user", "content": build_user_prompt(options)},
        ]

        def _sync_chat():
            return self._client.chat.completions.create(
                model=self._model_id(options.model),
                messages=messages,
                temperature=0.7,
                response_format={"type": "json_object"},
            )

        completion = await asyncio.to_thread(_sync_chat)
        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise MalformedProviderResponse(f"{self.provider} returned empty content")

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise MalformedProviderResponse(
                f"Failed to parse {self.provider} response: {exc}"
            ) from exc

        days = parsed.get("days") if isinstance(parsed, dict) else None
        if not isinstance(days, list):
            raise MalformedProviderResponse(f"{self.provider} response missing days array")

        return days


def get_llm_provider(
    provider: str, api_key: str | None = None, offline: bool = False
) -> LLMProviderAdapter:
    """
    Resolve a provider key to an adapter.

    Offline mode always yields the mock. Unknown and unimplemented keys raise
    instead of falling back.
    """
    if offline or provider == MOCK_PROVIDER:
        return MockLLMProvider()
    if provider in REMOTE_PROVIDERS:
        return RemoteLLMProvider(api_key, provider=provider)
    if provider in UNIMPLEMENTED_PROVIDERS:
        raise ProviderUnimplemented(provider)
    raise ProviderUnknown(provider)
