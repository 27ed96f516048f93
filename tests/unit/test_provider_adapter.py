"""Tests for the provider retry policy and thought parsing."""

from unittest.mock import MagicMock

import pytest
import requests

from overviewer_agent.core.config import LLMConfig
from overviewer_agent.errors import ProviderError, ProviderFatalError, ProviderRetryExhausted
from overviewer_agent.llm import Message, ProviderKind, RetryPolicy, create_provider, parse_thought
from overviewer_agent.llm.base import ProviderAdapter, parse_retry_after
from overviewer_agent.llm.bridge_provider import ClaudeBridgeProvider
from overviewer_agent.llm.thought_parser import UNPARSEABLE_ANSWER

FINISHED = '{"reasoning": "done", "finished": true, "finalAnswer": "Fixed it"}'


class ScriptedProvider(ProviderAdapter):
    """Returns or raises the scripted outcomes in order; repeats the last one."""

    name = "scripted"

    def __init__(self, outcomes, **kwargs):
        super().__init__(**kwargs)
        self.outcomes = list(outcomes)
        self.calls = 0

    async def _complete(self, system_prompt, history):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _provider(outcomes, jitter=0.0, max_attempts=5):
    sleep = SleepRecorder()
    provider = ScriptedProvider(
        outcomes,
        retry_policy=RetryPolicy(max_attempts=max_attempts, jitter=jitter),
        min_request_interval=0,
        sleep=sleep,
    )
    return provider, sleep


HISTORY = [Message(role="user", content="Fix the crash")]


class TestRetryPolicy:
    def test_delays_double_and_cap(self):
        policy = RetryPolicy(jitter=0)
        assert [policy.delay_for(n) for n in range(1, 9)] == [1, 2, 4, 8, 16, 32, 60, 60]

    def test_jitter_bounds(self):
        policy = RetryPolicy(jitter=0.2)
        assert policy.delay_for(3, rng=lambda: 0.0) == pytest.approx(3.2)
        assert policy.delay_for(3, rng=lambda: 1.0) == pytest.approx(4.8)

    def test_retry_after_parsing(self):
        assert parse_retry_after("7") == 7.0
        assert parse_retry_after(None) is None
        assert parse_retry_after("soon") is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


class TestGenerateThought:
    @pytest.mark.asyncio
    async def test_success_first_call(self):
        provider, sleep = _provider([FINISHED])
        thought = await provider.generate_thought("system", HISTORY)
        assert thought.finished is True
        assert thought.final_answer == "Fixed it"
        assert provider.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_always_429_exhausts_attempts(self):
        provider, sleep = _provider([ProviderError("HTTP 429: slow down", status=429)])

        with pytest.raises(ProviderRetryExhausted) as exc_info:
            await provider.generate_thought("system", HISTORY)

        assert provider.calls == 5
        assert sleep.delays == [1, 2, 4, 8]
        assert sleep.delays == sorted(sleep.delays)
        assert "429" in str(exc_info.value)
        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_recovers_after_503(self):
        provider, sleep = _provider([ProviderError("HTTP 503: unavailable", status=503), FINISHED])
        thought = await provider.generate_thought("system", HISTORY)
        assert thought.final_answer == "Fixed it"
        assert provider.calls == 2
        assert sleep.delays == [1]

    @pytest.mark.asyncio
    async def test_retry_after_overrides_backoff(self):
        provider, sleep = _provider([ProviderError("HTTP 429", status=429, retry_after=12.0), FINISHED])
        await provider.generate_thought("system", HISTORY)
        assert sleep.delays == [12.0]

    @pytest.mark.asyncio
    async def test_auth_error_is_fatal_immediately(self):
        provider, sleep = _provider([ProviderError("HTTP 401: invalid api key", status=401)])
        with pytest.raises(ProviderFatalError):
            await provider.generate_thought("system", HISTORY)
        assert provider.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_connection_reset_is_retried(self):
        provider, _ = _provider([ConnectionResetError("reset by peer"), FINISHED])
        await provider.generate_thought("system", HISTORY)
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_unknown_exception_is_fatal(self):
        provider, _ = _provider([KeyError("model")])
        with pytest.raises(ProviderFatalError):
            await provider.generate_thought("system", HISTORY)

    @pytest.mark.asyncio
    async def test_min_request_interval_spaces_calls(self):
        sleep = SleepRecorder()
        provider = ScriptedProvider([FINISHED], min_request_interval=0.1, sleep=sleep, clock=lambda: 50.0)
        await provider.generate_thought("system", HISTORY)
        await provider.generate_thought("system", HISTORY)
        assert sleep.delays == [pytest.approx(0.1)]


class TestParseThought:
    def test_plain_json(self):
        thought = parse_thought('{"reasoning": "look", "action": {"tool": "read_file", "parameters": {"path": "a.py"}}}')
        assert thought.finished is False
        assert thought.action.tool == "read_file"
        assert thought.action.parameters == {"path": "a.py"}

    def test_fenced_block_inside_prose(self):
        content = 'Sure!\n```json\n{"reasoning": "r", "finished": true, "finalAnswer": "ok"}\n```\nThanks'
        assert parse_thought(content).final_answer == "ok"

    def test_no_json_finishes(self):
        thought = parse_thought("I give up")
        assert thought.finished is True
        assert thought.final_answer == UNPARSEABLE_ANSWER

    def test_invalid_json_finishes_with_explanation(self):
        thought = parse_thought("{reasoning: nope}")
        assert thought.finished is True
        assert thought.final_answer == UNPARSEABLE_ANSWER
        assert thought.reasoning == "{reasoning: nope}"

    def test_schema_mismatch_keeps_raw_text_out_of_answer(self):
        content = 'Done: {"action": "write everything"}'
        thought = parse_thought(content)
        assert thought.final_answer == UNPARSEABLE_ANSWER
        assert thought.reasoning == content

    def test_to_json_uses_field_names(self):
        thought = parse_thought(FINISHED)
        assert '"final_answer": "Fixed it"' in thought.to_json()


class TestBridgeProvider:
    def _response(self, status, json_body=None, text="", headers=None):
        response = MagicMock()
        response.status_code = status
        response.json.return_value = json_body or {}
        response.text = text
        response.headers = headers or {}
        return response

    @pytest.mark.asyncio
    async def test_joins_text_blocks(self):
        session = MagicMock()
        session.post.return_value = self._response(
            200, {"content": [{"type": "text", "text": FINISHED[:20]}, {"type": "text", "text": FINISHED[20:]}]}
        )
        provider = ClaudeBridgeProvider(bridge_url="http://bridge/", session=session, min_request_interval=0)

        thought = await provider.generate_thought("system", HISTORY)

        assert thought.final_answer == "Fixed it"
        url = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert url == "http://bridge/v1/messages"
        assert payload["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio
    async def test_http_error_carries_status_and_retry_after(self):
        session = MagicMock()
        session.post.return_value = self._response(503, text="overloaded", headers={"Retry-After": "3"})
        provider = ClaudeBridgeProvider(session=session)

        with pytest.raises(ProviderError) as exc_info:
            await provider._complete("system", HISTORY)

        assert exc_info.value.status == 503
        assert exc_info.value.retry_after == 3.0

    @pytest.mark.asyncio
    async def test_connection_error_is_network(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        provider = ClaudeBridgeProvider(session=session)

        with pytest.raises(ProviderError) as exc_info:
            await provider._complete("system", HISTORY)
        assert exc_info.value.network is True


class TestCreateProvider:
    def test_bridge_selected(self):
        provider = create_provider(LLMConfig(provider=ProviderKind.CLAUDE_BRIDGE.value, max_attempts=3))
        assert isinstance(provider, ClaudeBridgeProvider)
        assert provider.retry_policy.max_attempts == 3

    def test_litellm_selected(self):
        from overviewer_agent.llm.litellm_provider import LiteLLMProvider

        provider = create_provider(LLMConfig(model="openrouter/some-model", api_key="k"))
        assert isinstance(provider, LiteLLMProvider)
        assert provider.model == "openrouter/some-model"
