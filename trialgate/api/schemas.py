from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from trialgate.models.session import ChatOutcome


class ChatRequest(BaseModel):
    message: Optional[str] = None
    # Accepted for compatibility with older clients; only logged.
    sender: Optional[str] = None
    session_token: Optional[str] = Field(default=None, alias="sessionToken")

    model_config = {"populate_by_name": True}


class RevealStepOut(BaseModel):
    type: Literal["text", "image"]
    content: str
    delay_s: float = 0.0


class ChatResponse(BaseModel):
    botResponse: str
    sessionToken: str
    stage: int
    unlocked: bool = False
    sequence: List[RevealStepOut] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: ChatOutcome, token: str) -> "ChatResponse":
        return cls(
            botResponse=outcome.reply,
            sessionToken=token,
            stage=outcome.stage,
            unlocked=outcome.unlocked,
            sequence=[
                RevealStepOut(type=s.kind, content=s.content, delay_s=s.delay_s)
                for s in outcome.steps
            ],
        )


class TranscriptEntry(BaseModel):
    id: int
    sender: str
    message: str
    timestamp: str
    session_id: Optional[str] = None
