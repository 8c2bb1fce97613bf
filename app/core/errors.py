"""
Error types raised by the itinerary generation and maps pipeline.

Routers translate these into HTTP responses; credential and provider
selection errors are client-correctable, the rest are server-side.
"""


class TripMasterError(Exception):
    """Base class for domain errors."""


class InvalidInput(TripMasterError):
    """Structurally invalid day/date data."""


class CredentialRequired(TripMasterError):
    """A paid provider was selected without a usable API key."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"API key required for provider {provider}")


class ProviderUnimplemented(TripMasterError):
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f'LLM provider "{provider}" is not implemented yet')


class ProviderUnknown(TripMasterError):
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f'Unknown LLM provider "{provider}"')


class MalformedProviderResponse(TripMasterError):
    """The provider answered, but not with a usable days payload."""


class GenerationFailed(TripMasterError):
    def __init__(self, last_reason: str | None = None):
        self.last_reason = last_reason
        super().__init__(last_reason or "Failed to generate itinerary")


class ExternalLookupFailed(TripMasterError):
    """Places or Directions call failed at the transport or quota level."""
