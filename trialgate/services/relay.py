"""Relay to the upstream conversational service: Claude API with mock fallback."""
import logging
import random
from typing import Awaitable, Callable

from trialgate.config import settings
from trialgate.errors import TransientUpstreamError, UpstreamRejected
from trialgate.services.backoff import BackoffPolicy

logger = logging.getLogger(__name__)

Completer = Callable[[str, list[dict]], Awaitable[str]]

SYSTEM_PROMPT = """\
You are a sassy, funny, and slightly dramatic Artificial Intelligence assistant
named 'Birthday Bot' dedicated to delivering a secret birthday message to the
user. You MUST maintain the personality of a gatekeeper that tests the user with
questions about their friendship. If the user answers a free-form question
correctly, praise them humorously. If they answer incorrectly or go off-topic,
mock them lightly and steer them back to the current structured task. Keep your
answers brief and conversational.
"""


# ---------------------------------------------------------------------------
# Upstream completers
# ---------------------------------------------------------------------------

class AnthropicCompleter:
    """Calls the Messages API and classifies failures for the retry loop."""

    def __init__(self, api_key: str, model: str, max_tokens: int, transient_statuses):
        from anthropic import AsyncAnthropic
        self._client = AsyncAnthropic(api_key=api_key, max_retries=0)
        self._model = model
        self._max_tokens = max_tokens
        self._transient = frozenset(transient_statuses)

    async def __call__(self, system: str, messages: list[dict]) -> str:
        import anthropic

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system,
                messages=messages,
            )
        except anthropic.APIStatusError as exc:
            if exc.status_code in self._transient:
                raise TransientUpstreamError(str(exc), upstream_status=exc.status_code) from exc
            raise UpstreamRejected(str(exc), upstream_status=exc.status_code) from exc
        except anthropic.APIConnectionError as exc:
            raise TransientUpstreamError(str(exc)) from exc
        except anthropic.APIError as exc:
            raise UpstreamRejected(str(exc)) from exc
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()


_MOCK_PRAISE = [
    "Well, well, well. Look who actually remembers things! {ask}",
    "Correct! I'm almost impressed. Almost. {ask}",
    "Fine, you got that one. Don't let it go to your head. {ask}",
]

_MOCK_MOCKERY = [
    "Oh honey, no. That is painfully wrong. Try again: {ask}",
    "Wrong! Did you even hang out with them? Once more: {ask}",
    "Incorrect, and frankly a little embarrassing. {ask}",
]


class MockCompleter:
    """Canned in-character replies used when ANTHROPIC_API_KEY is not set."""

    def __init__(self, seed: int | None = None):
        self._rng = random.Random(seed)

    async def __call__(self, system: str, messages: list[dict]) -> str:
        text = messages[-1]["content"] if messages else ""
        ask = _quoted(text)
        if text.startswith("USER ANSWERED CORRECTLY"):
            return self._rng.choice(_MOCK_PRAISE).format(ask=ask)
        if text.startswith("USER ANSWERED INCORRECTLY"):
            return self._rng.choice(_MOCK_MOCKERY).format(ask=ask)
        return "Birthday Bot is listening, but the trials are over. Go enjoy your message!"


def _quoted(text: str) -> str:
    start = text.find('"')
    end = text.rfind('"')
    if 0 <= start < end:
        return text[start + 1:end]
    return ""


# ---------------------------------------------------------------------------
# Relay controller
# ---------------------------------------------------------------------------

class RelayController:
    def __init__(self, complete: Completer, policy: BackoffPolicy, system_prompt: str = SYSTEM_PROMPT):
        self._complete = complete
        self._policy = policy
        self._system_prompt = system_prompt

    async def send(self, text: str, history: list[dict]) -> str:
        """
        Send one user turn with the session's running context.
        history is extended with the user turn and the reply only on success.
        """
        messages = [*history, {"role": "user", "content": text}]

        async def _attempt() -> str:
            return await self._complete(self._system_prompt, messages)

        reply = await self._policy.run(_attempt, label="Upstream AI service")
        history.append({"role": "user", "content": text})
        history.append({"role": "assistant", "content": reply})
        return reply


def build_relay() -> RelayController:
    policy = BackoffPolicy(
        max_attempts=settings.relay_max_attempts,
        base_delay_s=settings.relay_base_delay_s,
        attempt_timeout_s=settings.relay_attempt_timeout_s,
    )
    if settings.use_mock_relay:
        logger.info("ANTHROPIC_API_KEY not set; relay running in mock mode")
        complete: Completer = MockCompleter()
    else:
        complete = AnthropicCompleter(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.relay_max_tokens,
            transient_statuses=settings.relay_transient_statuses,
        )
    return RelayController(complete, policy)
