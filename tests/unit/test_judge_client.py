import json

import pytest

from scverify.config.settings import JudgeConfig
from scverify.errors import JudgeFailure, JudgeTransportError
from scverify.judge_llm.engine import JudgeClient
from scverify.orchestrator.cancel import CancelToken
from scverify.schema.models import Finding, Location


SOURCE = "pragma solidity 0.8.18;\ncontract EtherStore {}\n"
VERDICT = json.dumps({"is_real_vulnerability": True, "confidence": 0.9, "rationale": "state written after call"})


class ScriptedTransport:
    """Returns strings and raises exceptions in the scripted order."""

    def __init__(self, *script):
        self.script = list(script)
        self.requests = []
        self.timeouts = []
        self.closed = False

    def complete(self, request, timeout=None):
        self.requests.append(request)
        self.timeouts.append(timeout)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


def _finding(**overrides) -> Finding:
    data = {
        "check_id": "reentrancy-eth",
        "severity": "high",
        "description": "Reentrancy in EtherStore.withdraw()",
        "locations": [Location(file="contract.sol", start_line=12, end_line=20)],
        "analyzer_confidence": "medium",
        "raw_fingerprint": "5f1e2b1f-nondeterministic",
    }
    data.update(overrides)
    return Finding(**data)


def _client(transport, sleeps=None, **config) -> JudgeClient:
    recorded = sleeps if sleeps is not None else []
    return JudgeClient(JudgeConfig(**config), transport=transport, sleep=recorded.append)


def test_request_is_deterministic_json_object():
    transport = ScriptedTransport(VERDICT)
    _client(transport, seed=7, max_tokens=500).judge(_finding(), SOURCE)

    request = transport.requests[0]
    assert request["model"] == "gpt-4o-mini"
    assert request["temperature"] == 0
    assert request["top_p"] == 0
    assert request["seed"] == 7
    assert request["max_tokens"] == 500
    assert request["response_format"] == {"type": "json_object"}
    roles = [m["role"] for m in request["messages"]]
    assert roles == ["system", "user"]
    assert SOURCE in request["messages"][1]["content"]


def test_fingerprint_never_sent():
    transport = ScriptedTransport(VERDICT)
    _client(transport).judge(_finding(), SOURCE)

    body = json.dumps(transport.requests[0])
    assert "raw_fingerprint" not in body
    assert "5f1e2b1f-nondeterministic" not in body
    assert "reentrancy-eth" in body


def test_successful_judgment_keeps_raw_response():
    judgment = _client(ScriptedTransport(VERDICT)).judge(_finding(), SOURCE)

    assert judgment.is_real_vulnerability is True
    assert judgment.confidence == 0.9
    assert judgment.rationale == "state written after call"
    assert judgment.raw_response == VERDICT
    assert judgment.raw_payload == json.loads(VERDICT)


def test_three_failures_then_success_uses_full_budget():
    sleeps = []
    transport = ScriptedTransport(
        JudgeTransportError("connection reset"),
        JudgeTransportError("HTTP 500", status_code=500),
        "not json at all",
        VERDICT,
    )

    judgment = _client(transport, sleeps).judge(_finding(), SOURCE)

    assert judgment.is_real_vulnerability is True
    assert len(transport.requests) == 4
    assert sleeps == [3.0, 2.0, 1.0]


def test_permanent_failure_exhausts_after_four_attempts():
    sleeps = []
    transport = ScriptedTransport(JudgeTransportError("HTTP 429", status_code=429))

    with pytest.raises(JudgeFailure) as excinfo:
        _client(transport, sleeps).judge(_finding(), SOURCE)

    assert excinfo.value.kind == JudgeFailure.EXHAUSTED_RETRIES
    assert excinfo.value.attempts == 4
    assert len(transport.requests) == 4
    assert sleeps == [3.0, 2.0, 1.0]


def test_ascending_backoff_is_configurable():
    sleeps = []
    transport = ScriptedTransport(JudgeTransportError("down"))

    with pytest.raises(JudgeFailure):
        _client(transport, sleeps, backoff="ascending", max_attempts=3).judge(_finding(), SOURCE)

    assert sleeps == [1.0, 2.0]


def test_missing_verdict_is_malformed_and_not_retried():
    transport = ScriptedTransport(json.dumps({"rationale": "looks fine"}))

    with pytest.raises(JudgeFailure) as excinfo:
        _client(transport).judge(_finding(), SOURCE)

    assert excinfo.value.kind == JudgeFailure.MALFORMED_RESPONSE
    assert len(transport.requests) == 1
    assert json.loads(excinfo.value.raw_response) == {"rationale": "looks fine"}


def test_out_of_range_confidence_is_malformed():
    transport = ScriptedTransport(json.dumps({"is_real_vulnerability": False, "confidence": 7}))

    with pytest.raises(JudgeFailure) as excinfo:
        _client(transport).judge(_finding(), SOURCE)
    assert excinfo.value.kind == JudgeFailure.MALFORMED_RESPONSE


def test_json_array_response_is_retried_then_exhausted():
    transport = ScriptedTransport("[true]")

    with pytest.raises(JudgeFailure) as excinfo:
        _client(transport, max_attempts=2).judge(_finding(), SOURCE)

    assert excinfo.value.kind == JudgeFailure.EXHAUSTED_RETRIES
    assert excinfo.value.raw_response == "[true]"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"isRealVulnerability": "yes"}, True),
        ({"is_real_vulnerability": "false"}, False),
        ({"is_real_vulnerability": 1, "reason": "owner only"}, True),
    ],
)
def test_boolean_equivalent_verdicts(payload, expected):
    judgment = _client(ScriptedTransport(json.dumps(payload))).judge(_finding(), SOURCE)
    assert judgment.is_real_vulnerability is expected


def test_repeated_calls_yield_identical_judgments():
    transport = ScriptedTransport(VERDICT)
    client = _client(transport)

    first = client.judge(_finding(), SOURCE)
    second = client.judge(_finding(), SOURCE)

    assert first == second
    assert first.model_dump_json() == second.model_dump_json()
    assert transport.requests[0] == transport.requests[1]


def test_unexpected_errors_are_not_swallowed():
    transport = ScriptedTransport(RuntimeError("bug"))

    with pytest.raises(RuntimeError):
        _client(transport).judge(_finding(), SOURCE)
    assert len(transport.requests) == 1


def test_raw_response_is_the_verbatim_content():
    content = '{"isRealVulnerability": true,  "reason": "unchecked call"}'
    judgment = _client(ScriptedTransport(content)).judge(_finding(), SOURCE)

    assert judgment.raw_response == content
    judgment.raw_payload["reason"] = "edited"
    assert judgment.raw_payload["reason"] == "unchecked call"


def test_request_timeout_is_bounded_by_the_cancel_deadline():
    transport = ScriptedTransport(VERDICT)

    _client(transport, request_timeout=60.0).judge(_finding(), SOURCE, cancel=CancelToken(deadline=5.0))

    assert len(transport.timeouts) == 1
    assert 0 < transport.timeouts[0] <= 5.0


def test_request_timeout_defaults_to_config_without_deadline():
    transport = ScriptedTransport(VERDICT)

    _client(transport, request_timeout=42.0).judge(_finding(), SOURCE, cancel=CancelToken())
    _client(transport, request_timeout=42.0).judge(_finding(), SOURCE)

    assert transport.timeouts == [42.0, 42.0]


def test_close_releases_the_transport():
    transport = ScriptedTransport(VERDICT)
    client = _client(transport)

    client.close()

    assert transport.closed is True
