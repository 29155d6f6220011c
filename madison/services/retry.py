"""Bounded exponential backoff for provider calls."""

from dataclasses import dataclass

from madison.config.settings import settings


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a single provider is retried."""

    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 8.0  # seconds
    exponential_base: float = 2.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.AI_MAX_ATTEMPTS),
            initial_delay=settings.AI_RETRY_BASE_DELAY_SECONDS,
            max_delay=settings.AI_RETRY_MAX_DELAY_SECONDS,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        exponent = max(attempt - 1, 0)
        return min(self.initial_delay * (self.exponential_base ** exponent), self.max_delay)

    def can_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def with_max_attempts(self, max_attempts: int) -> "RetryPolicy":
        return RetryPolicy(
            max_attempts=max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            exponential_base=self.exponential_base,
        )
