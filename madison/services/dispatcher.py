"""
Provider Dispatcher.

Runs a request against an ordered chain of providers. Every failed attempt
is turned into an explicit Outcome by ``decide``; ``run_chain`` only acts on
that outcome, so the whole retry/fallback policy lives in one function.

    text   claude -> gemini          (configured providers only)
    image  freepik -> gemini         (freepik only when entitled, one attempt)
           gemini
    video  freepik                   (one attempt, each submission is billed)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from madison.config.logger import app_logger, log_provider_attempt
from madison.config.settings import settings
from madison.db.supabase_db import insert_with_optional_fields
from madison.models.generation import GeneratedContent, GenerationRecord
from madison.services.ai_providers import (
    ClaudeTextProvider,
    GeminiImageProvider,
    GeminiTextProvider,
    TextResult,
)
from madison.services.entitlements import FREEPIK, ImageSelection
from madison.services.freepik_provider import FreepikProvider
from madison.services.reference_images import MaterializedReference
from madison.services.retry import RetryPolicy
from madison.utils.errors import GenerationFailedError, ProviderConfigError, ProviderError


FALLBACK_MARKER = "(fallback)"

GENERATED_IMAGES_TABLE = "generated_images"
GENERATED_CONTENT_TABLE = "generated_content"

# Columns added after the first schema release; dropped from an insert when
# the live store does not have them yet.
DROPPABLE_GENERATION_FIELDS = (
    "source_prompt",
    "library_category",
    "saved_to_library",
    "session_id",
    "description",
    "brand_context_used",
    "reference_images",
    "image_generator",
    "refinement_instruction",
    "output_format",
    "goal_type",
)

DROPPABLE_CONTENT_FIELDS = (
    "copy_squad",
    "awareness_stage",
    "system_prompt",
    "mode",
    "product_id",
)


# ═══════════════════════════════════════════════════════════════════════════════
# STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════════════

class OutcomeKind(str, Enum):
    OK = "ok"
    RETRY = "retry"
    FALLBACK = "fallback"
    FAIL = "fail"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    value: Any = None
    delay: float = 0.0
    provider: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, value: Any) -> "Outcome":
        return cls(OutcomeKind.OK, value=value)

    @classmethod
    def retry(cls, delay: float, error: BaseException) -> "Outcome":
        return cls(OutcomeKind.RETRY, delay=delay, error=error)

    @classmethod
    def fallback_to(cls, provider: str, error: BaseException) -> "Outcome":
        return cls(OutcomeKind.FALLBACK, provider=provider, error=error)

    @classmethod
    def fail(cls, error: BaseException) -> "Outcome":
        return cls(OutcomeKind.FAIL, error=error)


@dataclass
class ProviderAttempt:
    """One provider in a chain: a zero-argument coroutine factory plus its limits."""

    name: str
    call: Callable[[], Awaitable[Any]]
    timeout: float
    max_attempts: Optional[int] = None


@dataclass
class DispatchResult:
    value: Any
    provider: str
    used_fallback: bool = False
    attempts: int = 1

    @property
    def provider_label(self) -> str:
        """Provider name as persisted, marked when a fallback served the request."""
        return f"{self.provider} {FALLBACK_MARKER}" if self.used_fallback else self.provider


def decide(
    error: BaseException,
    attempt: int,
    policy: RetryPolicy,
    next_provider: Optional[str],
) -> Outcome:
    """Map a failed attempt to the next step.

    Configuration errors end the request. Transient errors and timeouts are
    retried on the same provider until its attempts run out. Everything else,
    and exhausted retries, moves to the next provider when there is one.
    """
    if isinstance(error, ProviderConfigError):
        return Outcome.fail(error)
    if isinstance(error, ProviderError) and error.retryable and policy.can_retry(attempt):
        return Outcome.retry(policy.calculate_delay(attempt), error)
    if next_provider is not None:
        return Outcome.fallback_to(next_provider, error)
    return Outcome.fail(error)


async def call_with_timeout(provider: ProviderAttempt) -> Any:
    """Run one provider call, abandoning it after ``provider.timeout`` seconds."""
    try:
        return await asyncio.wait_for(provider.call(), timeout=provider.timeout)
    except asyncio.TimeoutError as exc:
        raise ProviderError(
            provider.name,
            f"no response within {provider.timeout:.0f}s",
            kind=ProviderError.TIMEOUT,
        ) from exc


async def run_chain(
    chain: Sequence[ProviderAttempt],
    media_kind: str,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> DispatchResult:
    """Execute a provider chain.

    Raises:
        ProviderConfigError: If a provider turns out to be unconfigured
        GenerationFailedError: If every provider in the chain failed
    """
    if not chain:
        raise ProviderConfigError(f"No {media_kind} provider is configured")

    base_policy = policy or RetryPolicy.from_settings()
    index = 0
    attempt = 1
    total_attempts = 0

    while True:
        provider = chain[index]
        provider_policy = (
            base_policy.with_max_attempts(provider.max_attempts)
            if provider.max_attempts is not None
            else base_policy
        )
        next_provider = chain[index + 1].name if index + 1 < len(chain) else None

        started = time.perf_counter()
        total_attempts += 1
        try:
            value = await call_with_timeout(provider)
            outcome = Outcome.ok(value)
        except (ProviderError, ProviderConfigError) as exc:
            outcome = decide(exc, attempt, provider_policy, next_provider)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            # A reply the client could not read counts as an invalid response.
            error = ProviderError(provider.name, f"unreadable response: {exc!r}", kind=ProviderError.INVALID)
            outcome = decide(error, attempt, provider_policy, next_provider)
        log_provider_attempt(provider.name, media_kind, attempt, outcome.kind.value, time.perf_counter() - started)

        if outcome.kind == OutcomeKind.OK:
            return DispatchResult(
                value=outcome.value,
                provider=provider.name,
                used_fallback=index > 0,
                attempts=total_attempts,
            )

        if outcome.kind == OutcomeKind.RETRY:
            app_logger.warning(
                f"{provider.name} {media_kind} attempt {attempt} failed ({outcome.error}); "
                f"retrying in {outcome.delay:.1f}s"
            )
            await sleep(outcome.delay)
            attempt += 1
            continue

        if outcome.kind == OutcomeKind.FALLBACK:
            app_logger.warning(
                f"{provider.name} {media_kind} failed ({outcome.error}); falling back to {outcome.provider}"
            )
            index += 1
            attempt = 1
            continue

        if isinstance(outcome.error, ProviderConfigError):
            raise outcome.error
        app_logger.error(f"{media_kind} generation failed after {total_attempts} attempt(s): {outcome.error}")
        raise GenerationFailedError(
            f"{media_kind.capitalize()} generation failed: {outcome.error}",
            last_error=outcome.error,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# CHAINS
# ═══════════════════════════════════════════════════════════════════════════════

def text_chain(
    system_prompt: str,
    user_prompt: str,
    providers: Optional[Iterable[Any]] = None,
    timeout: Optional[float] = None,
) -> List[ProviderAttempt]:
    """Configured text providers in priority order (Claude, then Gemini)."""
    candidates = list(providers) if providers is not None else [ClaudeTextProvider(), GeminiTextProvider()]
    configured = [provider for provider in candidates if provider.configured]
    if not configured:
        raise ProviderConfigError("No text provider is configured (set ANTHROPIC_API_KEY or GEMINI_API_KEY)")

    def attempt_for(provider) -> ProviderAttempt:
        return ProviderAttempt(
            name=provider.name,
            call=lambda: provider.generate(system_prompt, user_prompt),
            timeout=timeout or settings.AI_REQUEST_TIMEOUT_SECONDS,
        )

    return [attempt_for(provider) for provider in configured]


def image_chain(
    selection: ImageSelection,
    prompt: str,
    references: Sequence[MaterializedReference] = (),
    aspect_ratio: Optional[str] = None,
    seed: Optional[int] = None,
    negative_prompt: Optional[str] = None,
    gemini: Optional[GeminiImageProvider] = None,
    freepik: Optional[FreepikProvider] = None,
) -> List[ProviderAttempt]:
    """Entitled alternate provider first (single attempt), Gemini as the default."""
    gemini = gemini or GeminiImageProvider()
    chain: List[ProviderAttempt] = []

    if selection.provider == FREEPIK:
        freepik = freepik or FreepikProvider()
        if freepik.configured:
            chain.append(ProviderAttempt(
                name=freepik.name,
                call=lambda: freepik.generate_image(
                    prompt,
                    model=selection.freepik_model,
                    aspect_ratio=aspect_ratio,
                    resolution=selection.resolution,
                    seed=seed,
                    negative_prompt=negative_prompt,
                ),
                timeout=freepik.image_timeout,
                max_attempts=1,
            ))
        else:
            app_logger.warning("Freepik selected but FREEPIK_API_KEY is not configured; using Gemini")

    if gemini.configured or not chain:
        chain.append(ProviderAttempt(
            name=gemini.name,
            call=lambda: gemini.generate_image(prompt, references, aspect_ratio=aspect_ratio, seed=seed),
            timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
        ))
    return chain


def video_chain(
    image_url: str,
    prompt: str,
    aspect_ratio: Optional[str] = None,
    resolution: Optional[str] = None,
    duration: Optional[str] = None,
    camera_fixed: bool = False,
    seed: Optional[int] = None,
    freepik: Optional[FreepikProvider] = None,
) -> List[ProviderAttempt]:
    freepik = freepik or FreepikProvider()
    return [ProviderAttempt(
        name=freepik.name,
        call=lambda: freepik.generate_video(
            image_url,
            prompt,
            aspect_ratio=aspect_ratio,
            resolution=resolution,
            duration=duration,
            camera_fixed=camera_fixed,
            seed=seed,
        ),
        timeout=freepik.video_timeout,
        max_attempts=1,
    )]


async def dispatch_text(
    system_prompt: str,
    user_prompt: str,
    providers: Optional[Iterable[Any]] = None,
    policy: Optional[RetryPolicy] = None,
) -> DispatchResult:
    result = await run_chain(text_chain(system_prompt, user_prompt, providers), "text", policy)
    text: TextResult = result.value
    app_logger.info(f"Text generated by {result.provider_label} ({text.model}, {len(text.text)} chars)")
    return result


# ═══════════════════════════════════════════════════════════════════════════════
# PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════════

def _payload(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", exclude_none=True)


async def persist_generation(record: GenerationRecord) -> Dict[str, Any]:
    """Store an image/video generation, tolerating columns the store lacks."""
    payload = _payload(record)
    stored = await insert_with_optional_fields(GENERATED_IMAGES_TABLE, payload, DROPPABLE_GENERATION_FIELDS)
    app_logger.info(
        f"Saved {record.media_type} generation {stored.get('id', record.id)} "
        f"(provider={record.generation_provider}, depth={record.chain_depth})"
    )
    return stored


async def persist_content(record: GeneratedContent) -> Dict[str, Any]:
    payload = _payload(record)
    return await insert_with_optional_fields(GENERATED_CONTENT_TABLE, payload, DROPPABLE_CONTENT_FIELDS)
