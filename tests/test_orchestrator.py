from typing import Dict, List

import pytest

from sitegen.errors import ExtractionFailed, FailureKind, FallbackExhausted, GenerationAborted, ProviderError
from sitegen.models import ProviderCandidate
from sitegen.orchestrator import (
    APP_CANDIDATES,
    REFINE_CANDIDATES,
    WEBSITE_CANDIDATES,
    ChainState,
    FallbackOrchestrator,
    OperationProfile,
    PayloadPlan,
)


def _candidates(n: int):
    return tuple(ProviderCandidate("huggingface", f"model-{i}", 1000) for i in range(n))


PROFILE = OperationProfile("generate website", _candidates(4), timeout_delay=5.0, loading_delay=15.0)


class ScriptedClient:
    """Returns or raises per model name, one scripted outcome per call."""

    def __init__(self, script: Dict[str, List]):
        self.script = {k: list(v) for k, v in script.items()}
        self.calls: List[str] = []

    def invoke(self, candidate, system_prompt, user_prompt):
        self.calls.append(candidate.model_name)
        outcome = self.script[candidate.model_name].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _payload(parse=lambda raw: raw.upper()):
    return PayloadPlan("system", "user", parse)


def _orchestrator(client, sleeps):
    return FallbackOrchestrator(client, sleep=sleeps.append)


def test_first_candidate_success_needs_no_delay():
    client = ScriptedClient({"model-0": ["ok"]})
    sleeps: List[float] = []
    orch = _orchestrator(client, sleeps)
    assert orch.run(PROFILE, _payload()) == "OK"
    assert client.calls == ["model-0"]
    assert sleeps == []
    assert orch.state is ChainState.SUCCEEDED


def test_gateway_timeouts_then_success_records_n_minus_one_delays():
    timeout = ProviderError("HTTP 504: Gateway Timeout", status=504)
    client = ScriptedClient({
        "model-0": [timeout],
        "model-1": [timeout],
        "model-2": [timeout],
        "model-3": ["done"],
    })
    sleeps: List[float] = []
    orch = _orchestrator(client, sleeps)
    assert orch.run(PROFILE, _payload()) == "DONE"
    assert client.calls == ["model-0", "model-1", "model-2", "model-3"]
    assert sleeps == [5.0, 5.0, 5.0]
    assert [a.kind for a in orch.attempts[:3]] == [FailureKind.GATEWAY_TIMEOUT] * 3
    assert orch.attempts[-1].succeeded


def test_no_delay_after_last_candidate():
    timeout = ProviderError("request timed out", kind=FailureKind.GATEWAY_TIMEOUT)
    client = ScriptedClient({f"model-{i}": [timeout] for i in range(4)})
    sleeps: List[float] = []
    with pytest.raises(FallbackExhausted) as ei:
        _orchestrator(client, sleeps).run(PROFILE, _payload())
    assert sleeps == [5.0, 5.0, 5.0]
    assert "timed out" in str(ei.value)
    assert len(ei.value.attempts) == 4


def test_auth_failure_stops_the_chain():
    client = ScriptedClient({
        "model-0": [ProviderError("HTTP 500: boom", status=500)],
        "model-1": [ProviderError("HTTP 401: Invalid credentials", status=401)],
        "model-2": ["never"],
        "model-3": ["never"],
    })
    orch = _orchestrator(client, [])
    with pytest.raises(GenerationAborted) as ei:
        orch.run(PROFILE, _payload())
    assert client.calls == ["model-0", "model-1"]
    assert "Invalid credentials" in str(ei.value)
    assert orch.state is ChainState.EXHAUSTED


def test_loading_model_is_retried_once_after_delay():
    client = ScriptedClient({
        "model-0": [ProviderError("HTTP 503: Model is currently loading", status=503), "warm"],
    })
    sleeps: List[float] = []
    orch = _orchestrator(client, sleeps)
    assert orch.run(PROFILE, _payload()) == "WARM"
    assert client.calls == ["model-0", "model-0"]
    assert sleeps == [15.0]
    assert orch.attempts[1].retry is True


def test_failed_retry_moves_to_next_candidate():
    loading = ProviderError("HTTP 503: loading", status=503)
    client = ScriptedClient({
        "model-0": [loading, ProviderError("HTTP 503: still loading", status=503)],
        "model-1": ["second"],
    })
    sleeps: List[float] = []
    assert _orchestrator(client, sleeps).run(PROFILE, _payload()) == "SECOND"
    assert client.calls == ["model-0", "model-0", "model-1"]
    assert sleeps == [15.0]


def test_malformed_output_rate_limit_and_unknown_advance_without_delay():
    def parse(raw):
        if raw == "garbage":
            raise ExtractionFailed("No JSON object found in response")
        return raw

    client = ScriptedClient({
        "model-0": ["garbage"],
        "model-1": [ProviderError("HTTP 429: rate limit reached", status=429)],
        "model-2": [ProviderError("something odd")],
        "model-3": ["fine"],
    })
    sleeps: List[float] = []
    orch = _orchestrator(client, sleeps)
    assert orch.run(PROFILE, _payload(parse)) == "fine"
    assert sleeps == []
    assert [a.kind for a in orch.attempts[:3]] == [
        FailureKind.MALFORMED_OUTPUT,
        FailureKind.RATE_LIMITED,
        FailureKind.UNKNOWN,
    ]


def test_exhausted_error_carries_last_failure():
    client = ScriptedClient({f"model-{i}": [ProviderError(f"failure {i}")] for i in range(4)})
    with pytest.raises(FallbackExhausted) as ei:
        _orchestrator(client, []).run(PROFILE, _payload())
    assert "failure 3" in str(ei.value)
    assert not isinstance(ei.value, GenerationAborted)


def test_deadline_stops_before_next_attempt():
    now = [0.0]

    def sleep(seconds):
        now[0] += seconds

    timeout = ProviderError("HTTP 504", status=504)
    client = ScriptedClient({f"model-{i}": [timeout] for i in range(4)})
    orch = FallbackOrchestrator(client, sleep=sleep, clock=lambda: now[0], deadline_secs=8.0)
    with pytest.raises(FallbackExhausted) as ei:
        orch.run(PROFILE, _payload())
    assert "deadline exceeded" in str(ei.value)
    assert client.calls == ["model-0", "model-1"]


def test_candidate_lists_and_token_budgets():
    assert [c.model_name for c in WEBSITE_CANDIDATES][0] == "Qwen/Qwen3-32B"
    assert [c.max_tokens for c in WEBSITE_CANDIDATES] == [4000, 3000, 3000, 3000, 4000, 2500]
    assert APP_CANDIDATES[0].model_name == "Qwen/Qwen2.5-Coder-32B-Instruct"
    assert [c.max_tokens for c in APP_CANDIDATES] == [16384, 16384, 8192, 8192, 8192]
    assert [c.model_name for c in REFINE_CANDIDATES] == [c.model_name for c in WEBSITE_CANDIDATES]
    assert {c.temperature for c in REFINE_CANDIDATES} == {0.5}
    assert {c.top_p for c in WEBSITE_CANDIDATES + APP_CANDIDATES + REFINE_CANDIDATES} == {0.9}


def test_shape_errors_from_parse_advance_as_malformed_output():
    def parse(raw):
        if raw == "odd":
            return raw["palette"]
        return raw

    client = ScriptedClient({"model-0": ["odd"], "model-1": ["fine"]})
    sleeps: List[float] = []
    orch = _orchestrator(client, sleeps)
    assert orch.run(PROFILE, _payload(parse)) == "fine"
    assert orch.attempts[0].kind is FailureKind.MALFORMED_OUTPUT
    assert sleeps == []
