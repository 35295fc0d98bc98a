"""Challenge and StageKind definitions, plus the challenge catalogue loader."""
import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class StageKind(str, Enum):
    CHALLENGE = "CHALLENGE"
    UNLOCKED = "UNLOCKED"


@dataclass(frozen=True)
class Challenge:
    prompt: str
    accepted_answers: frozenset[str]

    @classmethod
    def of(cls, prompt: str, answers) -> "Challenge":
        return cls(prompt=prompt, accepted_answers=frozenset(answers))


DEFAULT_CHALLENGES: tuple[Challenge, ...] = (
    Challenge.of(
        "Welcome! I am the Birthday Bot. You must pass three trials of friendship "
        "to unlock your message. Send 'START' to begin!",
        ["start"],
    ),
    Challenge.of(
        "Alright, first trial! What is the slightly embarrassing code name we gave "
        "our favorite coffee shop? If you remember, enter it now!",
        ["bunker", "fortress", "secret base"],
    ),
    Challenge.of(
        "Excellent. Second Trial: What's the title of the absolutely terrible movie "
        "we watched together and vowed never to speak of again? Give me the exact title!",
        ["sharknado", "terrible movie"],
    ),
    Challenge.of(
        "Final Trial: Enter the secret phrase we say every time we leave each "
        "other's house. (This is the password!)",
        ["seeya", "best friend forever"],
    ),
)


def load_challenges(path: str = "") -> tuple[Challenge, ...]:
    """
    Load the catalogue from a JSON file of
    [{"prompt": "...", "answers": ["...", ...]}, ...].
    Falls back to DEFAULT_CHALLENGES when no path is configured.
    """
    if not path:
        return DEFAULT_CHALLENGES
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    challenges = []
    for i, entry in enumerate(raw):
        answers = [a for a in entry.get("answers", []) if a.strip()]
        if not entry.get("prompt") or not answers:
            raise ValueError(f"challenge {i} needs a prompt and at least one answer")
        challenges.append(Challenge.of(entry["prompt"], answers))
    if not challenges:
        raise ValueError(f"no challenges defined in {path}")
    return tuple(challenges)
