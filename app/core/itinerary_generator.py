import logging
from contextlib import aclosing
from typing import Any, AsyncIterable, AsyncIterator, NamedTuple

from pydantic import TypeAdapter, ValidationError

from app.core.errors import CredentialRequired, GenerationFailed
from app.core.llm_provider import (
    MOCK_PROVIDER,
    GenerateOptions,
    LLMProviderAdapter,
    get_llm_provider,
)
from app.core.schemas import TripDay

logger = logging.getLogger(__name__)

_generated_days = TypeAdapter(list[TripDay])


class AttemptOutcome(NamedTuple):
    """Either validated days or the reason the attempt failed."""

    days: list[TripDay] | None = None
    reason: str | None = None


def validate_generated_days(raw: Any) -> list[TripDay]:
    """Validate a provider payload against the day/item/location/route schema."""
    return _generated_days.validate_python(raw)


async def run_attempt(adapter: LLMProviderAdapter, options: GenerateOptions) -> AttemptOutcome:
    try:
        raw = await adapter.generate_itinerary(options)
        return AttemptOutcome(days=validate_generated_days(raw))
    except ValidationError as e:
        return AttemptOutcome(reason=f"Generated itinerary failed validation: {e}")
    except Exception as e:
        return AttemptOutcome(reason=str(e) or "Unknown generation error")


async def settle_attempts(outcomes: AsyncIterable[AttemptOutcome]) -> list[TripDay]:
    """
    Fold attempt outcomes into a result: the first success wins, otherwise the
    last failure reason is raised as GenerationFailed.
    """
    last_reason: str | None = None
    async for outcome in outcomes:
        if outcome.days is not None:
            return outcome.days
        last_reason = outcome.reason
    raise GenerationFailed(last_reason)


async def _attempts(
    adapter: LLMProviderAdapter, options: GenerateOptions, attempts: int, provider: str
) -> AsyncIterator[AttemptOutcome]:
    for attempt in range(1, attempts + 1):
        outcome = await run_attempt(adapter, options)
        if outcome.days is None:
            logger.warning(f"Itinerary generation attempt {attempt}/{attempts} failed: {outcome.reason}")
        else:
            logger.info(f"Generated {len(outcome.days)} days with {provider} on attempt {attempt}")
        yield outcome


async def generate_itinerary_with_validation(
    provider: str,
    options: GenerateOptions,
    max_retries: int = 2,
    offline: bool = False,
) -> list[TripDay]:
    """
    Generate an itinerary, retrying malformed or failed generations.

    The API key check and provider selection happen once up front, in that
    order: any non-mock provider without a key raises CredentialRequired, and
    ProviderUnknown or ProviderUnimplemented follow. None of them consumes an
    attempt. After that, up to max_retries + 1 attempts run back to back; the
    first payload that validates is returned.

    Raises:
        CredentialRequired: Non-mock provider without an API key
        GenerationFailed: All attempts failed, or the provider client could not
            be created; carries the last failure reason
    """
    if not offline and provider != MOCK_PROVIDER and not options.api_key:
        raise CredentialRequired(provider)

    adapter = get_llm_provider(provider, api_key=options.api_key, offline=offline)
    attempts = max(0, max_retries) + 1

    async with aclosing(_attempts(adapter, options, attempts, provider)) as outcomes:
        return await settle_attempts(outcomes)
