"""Unit tests for the backoff policy and the relay controller."""
import asyncio
import os
import sys
import types
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

os.environ["ANTHROPIC_API_KEY"] = ""   # triggers mock mode

import anthropic
import httpx

from trialgate.errors import TransientUpstreamError, UpstreamRejected, UpstreamUnavailable
from trialgate.services.backoff import BackoffPolicy, is_transient
from trialgate.services.relay import AnthropicCompleter, MockCompleter, RelayController, build_relay


def _policy(sleeps: list, max_attempts: int = 3, attempt_timeout_s=None) -> BackoffPolicy:
    async def fake_sleep(delay):
        sleeps.append(delay)

    return BackoffPolicy(
        max_attempts=max_attempts,
        base_delay_s=1.0,
        attempt_timeout_s=attempt_timeout_s,
        sleep=fake_sleep,
    )


class FlakyUpstream:
    """Fails with the queued errors, then answers."""

    def __init__(self, errors, reply="ok"):
        self.errors = list(errors)
        self.reply = reply
        self.calls: list[list[dict]] = []

    async def __call__(self, system, messages):
        self.calls.append(list(messages))
        if self.errors:
            raise self.errors.pop(0)
        return self.reply


# ---------------------------------------------------------------------------
# Backoff policy
# ---------------------------------------------------------------------------

class TestBackoffPolicy(unittest.TestCase):
    def test_delay_schedule(self):
        policy = BackoffPolicy(max_attempts=3, base_delay_s=1.0)
        self.assertEqual([policy.delay_before(i) for i in range(3)], [0.0, 1.0, 2.0])

    def test_delay_scales_with_base(self):
        policy = BackoffPolicy(base_delay_s=0.5)
        self.assertEqual([policy.delay_before(i) for i in range(4)], [0.0, 0.5, 1.0, 2.0])

    def test_success_first_try_never_sleeps(self):
        sleeps = []
        upstream = FlakyUpstream([])
        result = asyncio.run(_policy(sleeps).run(lambda: upstream("s", [])))
        self.assertEqual(result, "ok")
        self.assertEqual(sleeps, [])

    def test_recovers_after_transient_failures(self):
        sleeps = []
        upstream = FlakyUpstream([TransientUpstreamError(upstream_status=503)] * 2)
        result = asyncio.run(_policy(sleeps).run(lambda: upstream("s", [])))
        self.assertEqual(result, "ok")
        self.assertEqual(len(upstream.calls), 3)
        self.assertEqual(sleeps, [1.0, 2.0])

    def test_exhaustion_raises_upstream_unavailable_without_extra_attempt(self):
        sleeps = []
        upstream = FlakyUpstream([TransientUpstreamError(upstream_status=500)] * 4)
        with self.assertRaises(UpstreamUnavailable) as ctx:
            asyncio.run(_policy(sleeps).run(lambda: upstream("s", [])))
        self.assertEqual(len(upstream.calls), 3)
        self.assertEqual(sleeps, [1.0, 2.0])
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIsInstance(ctx.exception.last_error, TransientUpstreamError)

    def test_non_transient_propagates_immediately(self):
        sleeps = []
        upstream = FlakyUpstream([UpstreamRejected(upstream_status=400)])
        with self.assertRaises(UpstreamRejected):
            asyncio.run(_policy(sleeps).run(lambda: upstream("s", [])))
        self.assertEqual(len(upstream.calls), 1)
        self.assertEqual(sleeps, [])

    def test_non_transient_after_transient_is_not_retried(self):
        sleeps = []
        upstream = FlakyUpstream([TransientUpstreamError(), KeyError("boom")])
        with self.assertRaises(KeyError):
            asyncio.run(_policy(sleeps).run(lambda: upstream("s", [])))
        self.assertEqual(len(upstream.calls), 2)
        self.assertEqual(sleeps, [1.0])

    def test_attempt_timeout_counts_as_transient(self):
        sleeps = []
        calls = []

        async def hung():
            calls.append(1)
            await asyncio.sleep(5)

        with self.assertRaises(UpstreamUnavailable):
            asyncio.run(_policy(sleeps, max_attempts=2, attempt_timeout_s=0.01).run(hung))
        self.assertEqual(len(calls), 2)
        self.assertEqual(sleeps, [1.0])

    def test_classifier(self):
        self.assertTrue(is_transient(TransientUpstreamError()))
        self.assertTrue(is_transient(asyncio.TimeoutError()))
        self.assertFalse(is_transient(UpstreamRejected()))
        self.assertFalse(is_transient(ValueError()))


# ---------------------------------------------------------------------------
# Relay controller
# ---------------------------------------------------------------------------

class TestRelayController(unittest.TestCase):
    def test_success_appends_turn_to_history(self):
        upstream = FlakyUpstream([], reply="hello there")
        relay = RelayController(upstream, _policy([]), system_prompt="be sassy")
        history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "reply"}]

        reply = asyncio.run(relay.send("new turn", history))

        self.assertEqual(reply, "hello there")
        self.assertEqual(upstream.calls[0][-1], {"role": "user", "content": "new turn"})
        self.assertEqual(len(upstream.calls[0]), 3)
        self.assertEqual(history[-2:], [
            {"role": "user", "content": "new turn"},
            {"role": "assistant", "content": "hello there"},
        ])

    def test_context_carries_across_calls(self):
        upstream = FlakyUpstream([])
        relay = RelayController(upstream, _policy([]))
        history = []
        asyncio.run(relay.send("first", history))
        asyncio.run(relay.send("second", history))
        self.assertEqual([m["content"] for m in upstream.calls[1]], ["first", "ok", "second"])

    def test_failure_leaves_history_untouched(self):
        upstream = FlakyUpstream([TransientUpstreamError()] * 3)
        relay = RelayController(upstream, _policy([]))
        history = []
        with self.assertRaises(UpstreamUnavailable):
            asyncio.run(relay.send("hi", history))
        self.assertEqual(history, [])

    def test_retries_resend_same_messages(self):
        upstream = FlakyUpstream([TransientUpstreamError()])
        relay = RelayController(upstream, _policy([]))
        asyncio.run(relay.send("hi", []))
        self.assertEqual(upstream.calls[0], upstream.calls[1])

    def test_build_relay_uses_mock_without_key(self):
        relay = build_relay()
        self.assertIsInstance(relay._complete, MockCompleter)


class TestMockCompleter(unittest.TestCase):
    def test_praises_correct_answers_and_asks_next(self):
        text = 'USER ANSWERED CORRECTLY: start. Prompt the next question: "Coffee?". Be humorous.'
        reply = asyncio.run(MockCompleter(seed=1)("sys", [{"role": "user", "content": text}]))
        self.assertTrue(reply.endswith("Coffee?"))

    def test_mocks_wrong_answers(self):
        text = 'USER ANSWERED INCORRECTLY: banana to the question: "Coffee?". Be humorous.'
        reply = asyncio.run(MockCompleter(seed=1)("sys", [{"role": "user", "content": text}]))
        self.assertIn("Coffee?", reply)

    def test_passthrough_reply(self):
        reply = asyncio.run(MockCompleter()("sys", [{"role": "user", "content": "thanks!"}]))
        self.assertIn("trials are over", reply)


# ---------------------------------------------------------------------------
# Anthropic error classification
# ---------------------------------------------------------------------------

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(code: int) -> anthropic.APIStatusError:
    return anthropic.APIStatusError(
        "upstream said no", response=httpx.Response(code, request=_REQUEST), body=None
    )


class FakeMessages:
    def __init__(self, outcome):
        self.outcome = outcome
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class TestAnthropicCompleter(unittest.TestCase):
    def _completer(self, outcome):
        completer = AnthropicCompleter(
            api_key="test-key", model="claude-test", max_tokens=64,
            transient_statuses=[500, 503, 529],
        )
        messages = FakeMessages(outcome)
        completer._client = types.SimpleNamespace(messages=messages)
        return completer, messages

    def test_returns_text_blocks(self):
        response = types.SimpleNamespace(content=[
            types.SimpleNamespace(type="text", text="Happy "),
            types.SimpleNamespace(type="text", text="birthday!"),
        ])
        completer, messages = self._completer(response)
        reply = asyncio.run(completer("be sassy", [{"role": "user", "content": "hi"}]))
        self.assertEqual(reply, "Happy birthday!")
        self.assertEqual(messages.kwargs["system"], "be sassy")
        self.assertEqual(messages.kwargs["model"], "claude-test")

    def test_transient_statuses(self):
        for code in (500, 503, 529):
            completer, _ = self._completer(_status_error(code))
            with self.assertRaises(TransientUpstreamError) as ctx:
                asyncio.run(completer("s", []))
            self.assertEqual(ctx.exception.upstream_status, code)

    def test_other_statuses_are_rejected(self):
        for code in (400, 401, 404, 429):
            completer, _ = self._completer(_status_error(code))
            with self.assertRaises(UpstreamRejected):
                asyncio.run(completer("s", []))

    def test_connection_error_is_transient(self):
        completer, _ = self._completer(anthropic.APIConnectionError(request=_REQUEST))
        with self.assertRaises(TransientUpstreamError):
            asyncio.run(completer("s", []))


if __name__ == "__main__":
    unittest.main(verbosity=2)
