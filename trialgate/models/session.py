"""Session, Message and turn outcome dataclasses."""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum


class Sender(str, Enum):
    USER = "User"
    BOT = "Bot"
    SYSTEM = "System"


class Verdict(str, Enum):
    ADVANCE = "ADVANCE"
    RETRY = "RETRY"


@dataclass(frozen=True)
class Message:
    id: int
    sender: str
    message: str
    timestamp: str
    session_id: str | None = None


@dataclass
class Session:
    session_id: str
    stage: int = 0
    context: list[dict] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    created_at: float = field(default_factory=time.monotonic)
    last_seen: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_seen = time.monotonic()


@dataclass(frozen=True)
class Evaluation:
    verdict: Verdict
    stage_before: int
    stage_after: int
    unlocked: bool = False

    @property
    def advanced(self) -> bool:
        return self.verdict is Verdict.ADVANCE


@dataclass(frozen=True)
class RevealStep:
    kind: str  # "text" or "image"
    content: str
    delay_s: float = 0.0


@dataclass
class ChatOutcome:
    reply: str
    stage: int
    unlocked: bool = False
    steps: list[RevealStep] = field(default_factory=list)

    @classmethod
    def reveal(cls, steps: list[RevealStep], stage: int) -> "ChatOutcome":
        return cls(reply=steps[0].content, stage=stage, unlocked=True, steps=steps)
