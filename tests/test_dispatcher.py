"""Unit tests for the provider dispatcher state machine."""

import asyncio
from typing import List
from unittest.mock import AsyncMock, patch

import pytest

from madison.models.generation import GenerationRecord
from madison.services.ai_providers import TextResult
from madison.services.dispatcher import (
    DROPPABLE_GENERATION_FIELDS,
    OutcomeKind,
    ProviderAttempt,
    decide,
    dispatch_text,
    image_chain,
    persist_generation,
    run_chain,
    text_chain,
    video_chain,
)
from madison.services.entitlements import FREEPIK, GEMINI, ImageSelection
from madison.services.retry import RetryPolicy
from madison.utils.errors import GenerationFailedError, ProviderConfigError, ProviderError

from conftest import ORG_ID


NO_WAIT = RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0)


class FakeTextProvider:
    """Text provider that replays a script of results and errors."""

    def __init__(self, name: str, script: List[object], configured: bool = True):
        self.name = name
        self.configured = configured
        self.script = list(script)
        self.calls = 0

    async def generate(self, system_prompt, user_prompt, max_tokens=None, temperature=None):
        self.calls += 1
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return TextResult(text=step, provider=self.name, model=f"{self.name}-test")


class FakeImageProvider:
    def __init__(self, name: str, configured: bool = True):
        self.name = name
        self.configured = configured
        self.image_timeout = 1.0
        self.video_timeout = 1.0


def transient(provider: str) -> ProviderError:
    return ProviderError(provider, "503 Service Unavailable", status_code=503, kind=ProviderError.TRANSIENT)


class TestDecide:
    """The outcome policy on its own."""

    def test_transient_error_is_retried_while_attempts_remain(self):
        """A retryable error with attempts left stays on the same provider."""
        outcome = decide(transient("claude"), 1, NO_WAIT, "gemini")
        assert outcome.kind == OutcomeKind.RETRY

    def test_exhausted_retries_fall_back(self):
        """After the last attempt the next provider is tried."""
        outcome = decide(transient("claude"), 3, NO_WAIT, "gemini")
        assert outcome.kind == OutcomeKind.FALLBACK
        assert outcome.provider == "gemini"

    def test_quota_error_skips_retries(self):
        """Quota exhaustion is never retried on the same provider."""
        error = ProviderError("claude", "credit balance too low", status_code=429, kind=ProviderError.QUOTA)
        assert decide(error, 1, NO_WAIT, "gemini").kind == OutcomeKind.FALLBACK
        assert decide(error, 1, NO_WAIT, None).kind == OutcomeKind.FAIL

    def test_config_error_always_fails(self):
        """A missing credential ends the request even with a fallback available."""
        outcome = decide(ProviderConfigError("no key"), 1, NO_WAIT, "gemini")
        assert outcome.kind == OutcomeKind.FAIL

    def test_backoff_is_bounded(self):
        """Delays grow exponentially up to the cap."""
        policy = RetryPolicy(max_attempts=10, initial_delay=1.0, max_delay=8.0)
        assert [policy.calculate_delay(attempt) for attempt in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 8.0]


class TestRunChain:
    """Acting on outcomes across a provider chain."""

    @pytest.mark.asyncio
    async def test_transient_failure_falls_back_with_marker(self):
        """When the primary keeps failing, the secondary serves and the label says so."""
        claude = FakeTextProvider("claude", [transient("claude")] * 3)
        gemini = FakeTextProvider("gemini", ["Evening, distilled."])

        result = await dispatch_text("system", "user", providers=[claude, gemini], policy=NO_WAIT)

        assert result.value.text == "Evening, distilled."
        assert result.provider == "gemini"
        assert result.used_fallback is True
        assert result.provider_label == "gemini (fallback)"
        assert claude.calls == 3
        assert result.attempts == 4

    @pytest.mark.asyncio
    async def test_retry_then_success_is_not_a_fallback(self):
        """A retry that succeeds on the primary keeps the plain label."""
        claude = FakeTextProvider("claude", [transient("claude"), "ok"])
        result = await dispatch_text("system", "user", providers=[claude], policy=NO_WAIT)
        assert result.provider_label == "claude"
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_backoff_delays_are_slept(self):
        """Retries wait for the policy delay before the next attempt."""
        delays: List[float] = []

        async def record_sleep(delay: float):
            delays.append(delay)

        claude = FakeTextProvider("claude", [transient("claude"), transient("claude"), "ok"])
        policy = RetryPolicy(max_attempts=3, initial_delay=0.5, max_delay=8.0)
        await run_chain(text_chain("s", "u", [claude]), "text", policy, sleep=record_sleep)
        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_all_providers_failing_raises_one_error(self):
        """The caller gets a single structured failure."""
        claude = FakeTextProvider("claude", [ProviderError("claude", "bad request", 400, ProviderError.INVALID)])
        gemini = FakeTextProvider("gemini", [ProviderError("gemini", "bad request", 400, ProviderError.INVALID)])

        with pytest.raises(GenerationFailedError) as exc_info:
            await dispatch_text("system", "user", providers=[claude, gemini], policy=NO_WAIT)
        assert isinstance(exc_info.value.last_error, ProviderError)
        assert exc_info.value.last_error.provider == "gemini"

    @pytest.mark.asyncio
    async def test_unconfigured_providers_are_left_out(self):
        """Only providers with credentials join the chain."""
        claude = FakeTextProvider("claude", [], configured=False)
        gemini = FakeTextProvider("gemini", ["ok"])
        result = await dispatch_text("system", "user", providers=[claude, gemini], policy=NO_WAIT)
        assert result.provider_label == "gemini"
        assert claude.calls == 0

    def test_no_configured_text_provider_is_a_config_error(self):
        """A chain with nothing to call is rejected up front."""
        with pytest.raises(ProviderConfigError):
            text_chain("s", "u", [FakeTextProvider("claude", [], configured=False)])

    @pytest.mark.asyncio
    async def test_empty_chain_is_a_config_error(self):
        """run_chain refuses an empty chain."""
        with pytest.raises(ProviderConfigError):
            await run_chain([], "image", NO_WAIT)

    @pytest.mark.asyncio
    async def test_slow_provider_times_out_and_falls_back(self):
        """A call that exceeds its timeout counts as a failure."""

        async def slow():
            await asyncio.sleep(1)
            return "late"

        async def fast():
            return "on time"

        chain = [
            ProviderAttempt(name="slow", call=slow, timeout=0.01, max_attempts=1),
            ProviderAttempt(name="fast", call=fast, timeout=1.0),
        ]
        result = await run_chain(chain, "image", NO_WAIT)
        assert result.value == "on time"
        assert result.provider_label == "fast (fallback)"

    @pytest.mark.asyncio
    async def test_single_attempt_provider_is_not_retried(self):
        """A provider limited to one attempt falls back on its first transient error."""
        calls = []

        async def billed():
            calls.append(1)
            raise transient("freepik")

        async def default():
            return "image"

        chain = [
            ProviderAttempt(name="freepik", call=billed, timeout=1.0, max_attempts=1),
            ProviderAttempt(name="gemini", call=default, timeout=1.0),
        ]
        result = await run_chain(chain, "image", NO_WAIT)
        assert len(calls) == 1
        assert result.provider == "gemini"

    @pytest.mark.asyncio
    async def test_unreadable_reply_falls_back_without_retry(self):
        """A client that trips over a malformed body moves on to the next provider."""
        calls = []

        async def garbled():
            calls.append(1)
            return "oops".get("text")

        async def secondary():
            return "copy"

        chain = [
            ProviderAttempt(name="claude", call=garbled, timeout=1.0),
            ProviderAttempt(name="gemini", call=secondary, timeout=1.0),
        ]
        result = await run_chain(chain, "text", NO_WAIT)
        assert len(calls) == 1
        assert result.value == "copy"
        assert result.provider_label == "gemini (fallback)"

    @pytest.mark.asyncio
    async def test_unreadable_reply_on_last_provider_fails_cleanly(self):
        """The request still ends in one GenerationFailedError."""

        async def garbled():
            return {}["candidates"]

        with pytest.raises(GenerationFailedError) as exc_info:
            await run_chain([ProviderAttempt(name="gemini", call=garbled, timeout=1.0)], "text", NO_WAIT)
        assert exc_info.value.last_error.kind == ProviderError.INVALID


class TestChains:
    """Chain construction from the provider selection."""

    def test_image_chain_puts_entitled_freepik_first(self):
        """Freepik runs once before the Gemini default."""
        selection = ImageSelection(provider=FREEPIK, freepik_model="mystic", resolution="2k")
        chain = image_chain(
            selection,
            "prompt",
            gemini=FakeImageProvider("gemini"),
            freepik=FakeImageProvider("freepik"),
        )
        assert [attempt.name for attempt in chain] == ["freepik", "gemini"]
        assert chain[0].max_attempts == 1

    def test_image_chain_skips_unconfigured_freepik(self):
        """Without a Freepik key the request goes straight to Gemini."""
        selection = ImageSelection(provider=FREEPIK, freepik_model="mystic", resolution="2k")
        chain = image_chain(
            selection,
            "prompt",
            gemini=FakeImageProvider("gemini"),
            freepik=FakeImageProvider("freepik", configured=False),
        )
        assert [attempt.name for attempt in chain] == ["gemini"]

    def test_default_selection_uses_gemini_only(self):
        """The default provider has no fallback."""
        chain = image_chain(ImageSelection(provider=GEMINI), "prompt", gemini=FakeImageProvider("gemini"))
        assert [attempt.name for attempt in chain] == ["gemini"]

    def test_video_chain_is_single_attempt(self):
        """Video submissions are billed, so they are never retried."""
        chain = video_chain("https://cdn.test/a.png", "slow push in", freepik=FakeImageProvider("freepik"))
        assert len(chain) == 1
        assert chain[0].max_attempts == 1


class TestPersistence:
    """Generation records go through the schema-tolerant insert."""

    @pytest.mark.asyncio
    async def test_persist_generation_allows_dropping_newer_columns(self):
        """The insert is told which columns may be dropped."""
        record = GenerationRecord.model_validate({
            "organization_id": ORG_ID,
            "final_prompt": "A candle.",
            "generation_provider": "gemini (fallback)",
            "image_url": "https://cdn.test/a.png",
        })
        insert = AsyncMock(return_value={"id": str(record.id)})
        with patch("madison.services.dispatcher.insert_with_optional_fields", new=insert):
            stored = await persist_generation(record)

        table, payload, droppable = insert.await_args.args
        assert table == "generated_images"
        assert payload["generation_provider"] == "gemini (fallback)"
        assert payload["organization_id"] == ORG_ID
        assert droppable == DROPPABLE_GENERATION_FIELDS
        assert stored == {"id": str(record.id)}
