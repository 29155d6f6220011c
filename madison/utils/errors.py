"""Exception types raised by the generation pipeline.

Routers translate these into HTTP errors; services raise them and let
them propagate.
"""

from typing import Optional


class MadisonError(Exception):
    """Base class for pipeline errors."""


class ProviderConfigError(MadisonError):
    """A provider was selected but its credentials are not configured."""


class ProviderError(MadisonError):
    """A provider call failed.

    ``kind`` drives the dispatcher policy:
    - ``transient``: 5xx / network hiccup, retried with backoff
    - ``timeout``: call abandoned after the request timeout
    - ``quota``: 429 or credit/quota signal, never retried on the same provider
    - ``auth``: 401/403, never retried
    - ``invalid``: other 4xx or an unusable response body
    """

    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    QUOTA = "quota"
    AUTH = "auth"
    INVALID = "invalid"

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        kind: str = "transient",
    ):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in (self.TRANSIENT, self.TIMEOUT)


class GenerationFailedError(MadisonError):
    """Every provider attempt for a request failed."""

    def __init__(self, message: str, last_error: Optional[Exception] = None):
        super().__init__(message)
        self.last_error = last_error


class UpgradeRequiredError(MadisonError):
    """The organization's tier does not include the requested media kind."""

    def __init__(self, feature: str, tier: str):
        super().__init__(f"Upgrade required: '{feature}' is not available on the '{tier}' tier")
        self.feature = feature
        self.tier = tier


class SchemaSkewError(MadisonError):
    """An insert referenced a column the store does not have and it could not be dropped."""

    def __init__(self, table: str, column: Optional[str], message: str):
        super().__init__(f"Schema mismatch on {table}: {message}")
        self.table = table
        self.column = column


class OrganizationNotFoundError(MadisonError):
    """No organization could be resolved for the request."""
