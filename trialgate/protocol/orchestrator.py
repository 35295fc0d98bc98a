"""Composes gatekeeper, relay and transcript store for each inbound message."""
import logging

from trialgate import database
from trialgate.config import settings
from trialgate.errors import RelayError, SessionUnlocked, StoreUnavailable, UpstreamUnavailable, ValidationError
from trialgate.models.challenge import StageKind
from trialgate.models.session import ChatOutcome, Sender, Session
from trialgate.protocol import reveal
from trialgate.protocol.gatekeeper import Gatekeeper
from trialgate.services.relay import RelayController

logger = logging.getLogger(__name__)

WELCOME = "Welcome to the Friendship Trials! I am the Birthday Bot."


def correct_instruction(answer: str, next_prompt: str) -> str:
    return (
        f'USER ANSWERED CORRECTLY: {answer}. Prompt the next question: "{next_prompt}". '
        "Be humorous and congratulate the user."
    )


def incorrect_instruction(answer: str, prompt: str) -> str:
    return (
        f'USER ANSWERED INCORRECTLY: {answer} to the question: "{prompt}". '
        "Be humorous and mock them lightly, then ask the same question again."
    )


class Orchestrator:
    def __init__(
        self,
        gatekeeper: Gatekeeper,
        relay: RelayController,
        store=database,
        passthrough_after_unlock: bool | None = None,
        reveal_steps=None,
    ):
        self.gatekeeper = gatekeeper
        self.relay = relay
        self.store = store
        self.passthrough_after_unlock = (
            settings.post_unlock_passthrough
            if passthrough_after_unlock is None else passthrough_after_unlock
        )
        self._reveal_steps = reveal_steps or reveal.build_reveal

    def is_unlocked(self, session: Session) -> bool:
        return self.gatekeeper.kind(session.stage) is StageKind.UNLOCKED

    def greeting(self, session: Session) -> ChatOutcome:
        if self.is_unlocked(session):
            return ChatOutcome(reply=WELCOME, stage=session.stage, unlocked=True)
        prompt = self.gatekeeper.prompt(session.stage)
        return ChatOutcome(reply=f"{WELCOME} {prompt}", stage=session.stage)

    async def handle_message(self, session: Session, text: str | None) -> ChatOutcome:
        """
        Run one exchange. Raises ValidationError, SessionUnlocked,
        StoreUnavailable (user turn not recorded) or RelayError.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError()
        answer = text.strip()

        async with session.lock:
            session.touch()
            await self.store.append_message(Sender.USER, text, session.session_id)

            if self.is_unlocked(session):
                if not self.passthrough_after_unlock:
                    raise SessionUnlocked()
                return await self._relay_turn(session, text)

            evaluation = self.gatekeeper.evaluate(session.stage, answer)
            session.stage = evaluation.stage_after
            logger.info(
                "Session %s stage %d -> %d (%s)",
                session.session_id, evaluation.stage_before,
                evaluation.stage_after, evaluation.verdict.value,
            )
            if evaluation.unlocked:
                return await self._unlock(session)

            if evaluation.advanced:
                instruction = correct_instruction(answer, self.gatekeeper.prompt(evaluation.stage_after))
            else:
                instruction = incorrect_instruction(answer, self.gatekeeper.prompt(evaluation.stage_before))
            return await self._relay_turn(session, instruction)

    async def _relay_turn(self, session: Session, instruction: str) -> ChatOutcome:
        try:
            reply = await self.relay.send(instruction, session.context)
        except RelayError as exc:
            await self._record_failure(session, exc)
            raise
        await self._record(Sender.BOT, reply, session)
        return ChatOutcome(reply=reply, stage=session.stage, unlocked=self.is_unlocked(session))

    async def _unlock(self, session: Session) -> ChatOutcome:
        logger.info("Session %s unlocked the reveal", session.session_id)
        steps = self._reveal_steps()
        for step in steps:
            await self._record(Sender.BOT, step.content, session)
        return ChatOutcome.reveal(steps, stage=session.stage)

    async def _record(self, sender: Sender, text: str, session: Session) -> None:
        """Persist a reply already obtained; a store failure must not lose the reply."""
        try:
            await self.store.append_message(sender, text, session.session_id)
        except StoreUnavailable:
            logger.exception("Failed to persist %s message for session %s", sender.value, session.session_id)

    async def _record_failure(self, session: Session, exc: RelayError) -> None:
        if isinstance(exc, UpstreamUnavailable):
            logger.error("Relay exhausted retries for session %s: %s", session.session_id, exc)
            detail = f"Upstream unavailable after {exc.attempts} attempts"
        else:
            logger.error("Relay failed for session %s: %r", session.session_id, exc)
            detail = f"Upstream error: {type(exc).__name__}"
        await self._record(
            Sender.SYSTEM,
            f"{detail}; failed to get a response at stage {session.stage}",
            session,
        )
