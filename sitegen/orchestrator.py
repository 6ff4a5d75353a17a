from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, Tuple, TypeVar

from sitegen.errors import (
    FailureKind,
    FallbackExhausted,
    GenerationAborted,
    SitegenError,
)
from sitegen.models import ProviderCandidate
from sitegen.providers import HUGGING_FACE

log = logging.getLogger(__name__)

T = TypeVar("T")


def _hf(model: str, max_tokens: int, temperature: float = 0.7) -> ProviderCandidate:
    return ProviderCandidate(HUGGING_FACE, model, max_tokens, temperature=temperature, top_p=0.9)


# Ordered by reliability and response speed on the router
WEBSITE_CANDIDATES: Tuple[ProviderCandidate, ...] = (
    _hf("Qwen/Qwen3-32B", 4000),
    _hf("Qwen/Qwen3-8B", 3000),
    _hf("Qwen/Qwen2.5-72B-Instruct", 3000),
    _hf("Qwen/Qwen2.5-Coder-32B-Instruct", 3000),
    _hf("deepseek-ai/DeepSeek-R1", 4000),
    _hf("mistralai/Mistral-7B-Instruct-v0.3", 2500),
)

# Apps are whole SPAs in one file; largest token budgets first
APP_CANDIDATES: Tuple[ProviderCandidate, ...] = (
    _hf("Qwen/Qwen2.5-Coder-32B-Instruct", 16384),
    _hf("Qwen/Qwen3-32B", 16384),
    _hf("Qwen/Qwen2.5-72B-Instruct", 8192),
    _hf("Qwen/Qwen3-8B", 8192),
    _hf("deepseek-ai/DeepSeek-R1", 8192),
)

REFINE_CANDIDATES: Tuple[ProviderCandidate, ...] = tuple(
    _hf(c.model_name, c.max_tokens, temperature=0.5) for c in WEBSITE_CANDIDATES
)


class ChainState(Enum):
    NOT_STARTED = "not_started"
    TRYING = "trying"
    WAITING_RETRY = "waiting_retry"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class OperationProfile:
    """Candidate list and failure delays for one kind of generation."""

    name: str
    candidates: Tuple[ProviderCandidate, ...]
    timeout_delay: float
    loading_delay: float


WEBSITE_PROFILE = OperationProfile("generate website", WEBSITE_CANDIDATES, timeout_delay=5.0, loading_delay=15.0)
APP_PROFILE = OperationProfile("generate app", APP_CANDIDATES, timeout_delay=5.0, loading_delay=15.0)
REFINE_PROFILE = OperationProfile("refine template", REFINE_CANDIDATES, timeout_delay=3.0, loading_delay=10.0)


@dataclass(frozen=True)
class PayloadPlan(Generic[T]):
    """What to send and how to turn the raw completion into a result.

    ``parse`` raises ExtractionFailed (or any SitegenError/ValueError) when the
    text holds no acceptable payload; that counts as a failed attempt.
    """

    system_prompt: str
    user_prompt: str
    parse: Callable[[str], T]


@dataclass
class GenerationAttempt:
    candidate: ProviderCandidate
    number: int
    retry: bool = False
    raw_length: Optional[int] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class CompletionClient(Protocol):
    def invoke(self, candidate: ProviderCandidate, system_prompt: str, user_prompt: str) -> str: ...


# Raised by a client or parse step when a reply has the wrong shape
_SHAPE_ERRORS = (ValueError, TypeError, LookupError, AttributeError)
_CANDIDATE_ERRORS = (SitegenError,) + _SHAPE_ERRORS


def _failure_kind(exc: BaseException) -> FailureKind:
    kind = getattr(exc, "kind", None)
    if isinstance(kind, FailureKind):
        return kind
    if isinstance(exc, _SHAPE_ERRORS):
        return FailureKind.MALFORMED_OUTPUT
    return FailureKind.UNKNOWN


class FallbackOrchestrator:
    """Walks an operation's candidates one at a time until one yields a payload.

    Gateway timeouts wait ``timeout_delay`` and move on; a loading model waits
    ``loading_delay`` and gets exactly one retry; an authentication failure
    stops the chain; anything else moves straight to the next candidate.
    Nothing waits after the last candidate.
    """

    def __init__(
        self,
        client: CompletionClient,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        deadline_secs: float = 0.0,
        provider_label: str = "Hugging Face",
    ):
        self.client = client
        self.sleep = sleep
        self.clock = clock
        self.deadline_secs = deadline_secs
        self.provider_label = provider_label
        self.attempts: List[GenerationAttempt] = []
        self.state = ChainState.NOT_STARTED

    def _deadline_passed(self, started: float) -> bool:
        return self.deadline_secs > 0 and (self.clock() - started) >= self.deadline_secs

    def _attempt(
        self, profile: OperationProfile, payload: PayloadPlan[T], candidate: ProviderCandidate, retry: bool
    ) -> Tuple[Optional[T], GenerationAttempt]:
        record = GenerationAttempt(candidate=candidate, number=len(self.attempts) + 1, retry=retry)
        self.attempts.append(record)
        log.info(
            "fallback op=%s candidate=%s attempt=%d retry=%s",
            profile.name, candidate.label, record.number, retry,
        )
        try:
            raw = self.client.invoke(candidate, payload.system_prompt, payload.user_prompt)
            record.raw_length = len(raw)
            result = payload.parse(raw)
        except _CANDIDATE_ERRORS as exc:
            record.error = str(exc) or exc.__class__.__name__
            record.kind = _failure_kind(exc)
            log.warning(
                "fallback op=%s candidate=%s attempt=%d kind=%s error=%s",
                profile.name, candidate.label, record.number, record.kind.value, record.error[:300],
            )
            return None, record
        log.info(
            "fallback op=%s candidate=%s attempt=%d ok len=%s",
            profile.name, candidate.label, record.number, record.raw_length,
        )
        return result, record

    def _wait(self, profile: OperationProfile, seconds: float, reason: str) -> None:
        if seconds <= 0:
            return
        log.info("fallback op=%s waiting %.1fs (%s)", profile.name, seconds, reason)
        self.sleep(seconds)

    def _exhausted(self, profile: OperationProfile, last_error: Optional[str]) -> FallbackExhausted:
        self.state = ChainState.EXHAUSTED
        details = f"Last error: {last_error}" if last_error else "No specific error details"
        return FallbackExhausted(
            f"All {self.provider_label} models failed to {profile.name}. {details}",
            attempts=self.attempts,
        )

    def _deadline_exceeded(self, profile: OperationProfile, last_error: Optional[str]) -> FallbackExhausted:
        log.warning("fallback op=%s deadline of %gs exceeded", profile.name, self.deadline_secs)
        reason = f"deadline exceeded ({self.deadline_secs:g}s)"
        return self._exhausted(profile, f"{reason}; {last_error}" if last_error else reason)

    def run(self, profile: OperationProfile, payload: PayloadPlan[T]) -> T:
        """Return the first acceptable payload; raise FallbackExhausted otherwise.

        GenerationAborted (a FallbackExhausted) is raised on an authentication
        failure, carrying that candidate's error verbatim.
        """
        self.attempts = []
        self.state = ChainState.NOT_STARTED
        started = self.clock()
        last_error: Optional[str] = None
        candidates = profile.candidates
        if not candidates:
            raise self._exhausted(profile, "no candidates configured")

        for index, candidate in enumerate(candidates):
            is_last = index == len(candidates) - 1
            if self._deadline_passed(started):
                raise self._deadline_exceeded(profile, last_error)

            self.state = ChainState.TRYING
            result, record = self._attempt(profile, payload, candidate, retry=False)
            if record.succeeded:
                self.state = ChainState.SUCCEEDED
                return result  # type: ignore[return-value]
            last_error = record.error

            if record.kind is FailureKind.AUTH_FAILURE:
                self.state = ChainState.EXHAUSTED
                log.error("fallback op=%s aborting: authentication failed on %s", profile.name, candidate.label)
                raise GenerationAborted(
                    f"{self.provider_label} API authentication failed: {record.error}",
                    attempts=self.attempts,
                )

            if record.kind is FailureKind.GATEWAY_TIMEOUT:
                if not is_last:
                    if self._deadline_passed(started):
                        raise self._deadline_exceeded(profile, last_error)
                    self._wait(profile, profile.timeout_delay, "gateway timeout, next candidate")
                continue

            if record.kind is FailureKind.PROVIDER_UNAVAILABLE:
                if self._deadline_passed(started):
                    raise self._deadline_exceeded(profile, last_error)
                self.state = ChainState.WAITING_RETRY
                self._wait(profile, profile.loading_delay, "model loading, retrying once")
                result, retry_record = self._attempt(profile, payload, candidate, retry=True)
                if retry_record.succeeded:
                    self.state = ChainState.SUCCEEDED
                    return result  # type: ignore[return-value]
                last_error = retry_record.error
                continue

            # RATE_LIMITED, MALFORMED_OUTPUT and UNKNOWN advance without waiting

        raise self._exhausted(profile, last_error)


def describe_attempts(attempts: List[GenerationAttempt]) -> List[Dict[str, Any]]:
    return [
        {
            "model": a.candidate.model_name,
            "attempt": a.number,
            "retry": a.retry,
            "ok": a.succeeded,
            "kind": a.kind.value if a.kind else None,
        }
        for a in attempts
    ]
