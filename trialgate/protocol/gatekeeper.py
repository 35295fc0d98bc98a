"""Gatekeeper: local, deterministic judge of challenge progression."""
from trialgate.errors import SessionUnlocked, ValidationError
from trialgate.models.challenge import Challenge, StageKind
from trialgate.models.session import Evaluation, Verdict


def normalize(text: str) -> str:
    return text.strip().casefold()


class Gatekeeper:
    """
    Stages 0..K-1 are CHALLENGE stages, stage K is UNLOCKED.
    The transition table maps each CHALLENGE stage to (on_match, on_miss).
    """

    def __init__(self, challenges: tuple[Challenge, ...]):
        if not challenges:
            raise ValueError("at least one challenge is required")
        self._challenges = tuple(challenges)
        self._answers = [
            frozenset(normalize(a) for a in ch.accepted_answers if a.strip())
            for ch in self._challenges
        ]
        self._table: dict[int, tuple[int, int]] = {
            stage: (stage + 1, stage) for stage in range(len(self._challenges))
        }

    @property
    def terminal_stage(self) -> int:
        return len(self._challenges)

    def kind(self, stage: int) -> StageKind:
        if stage in self._table:
            return StageKind.CHALLENGE
        if stage == self.terminal_stage:
            return StageKind.UNLOCKED
        raise ValueError(f"unknown stage {stage}")

    def prompt(self, stage: int) -> str:
        if self.kind(stage) is not StageKind.CHALLENGE:
            raise SessionUnlocked("no prompt past the final stage")
        return self._challenges[stage].prompt

    def matches(self, stage: int, text: str) -> bool:
        normalized = normalize(text)
        return any(answer in normalized for answer in self._answers[stage])

    def evaluate(self, stage: int, text: str) -> Evaluation:
        if not text or not text.strip():
            raise ValidationError("empty input is never evaluated")
        if self.kind(stage) is StageKind.UNLOCKED:
            raise SessionUnlocked(f"stage {stage} is terminal")

        on_match, on_miss = self._table[stage]
        if self.matches(stage, text):
            return Evaluation(
                verdict=Verdict.ADVANCE,
                stage_before=stage,
                stage_after=on_match,
                unlocked=self.kind(on_match) is StageKind.UNLOCKED,
            )
        return Evaluation(verdict=Verdict.RETRY, stage_before=stage, stage_after=on_miss)
