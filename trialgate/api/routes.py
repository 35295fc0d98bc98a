"""REST endpoints: POST /chat, POST /sessions, GET /admin/conversations, GET /status."""
import logging
from dataclasses import asdict

import jwt
from fastapi import APIRouter, HTTPException, Query, Request

from trialgate import database
from trialgate.api.schemas import ChatRequest, ChatResponse, TranscriptEntry
from trialgate.errors import InvalidSession, StoreUnavailable, ValidationError
from trialgate.models.session import Session
from trialgate.services.sessions import SessionRegistry
from trialgate.services.token import create_token, decode_token

logger = logging.getLogger(__name__)

router = APIRouter()


def resolve_session(registry: SessionRegistry, token: str | None) -> tuple[Session, str]:
    """Return the session named by token, creating one when no token is given."""
    if not token:
        session = registry.create()
        return session, create_token(session.session_id)
    try:
        payload = decode_token(token)
    except jwt.InvalidTokenError as exc:
        raise InvalidSession(str(exc)) from exc
    session, created = registry.get_or_create(payload["session_id"])
    if created:
        logger.info("Session %s was evicted; restarting at stage 0", session.session_id)
    return session, token


@router.get("/status")
async def status(request: Request):
    from trialgate.config import settings
    return {
        "status": "ok",
        "service": "trialgate",
        "mock_mode": settings.use_mock_relay,
        "challenges": request.app.state.orchestrator.gatekeeper.terminal_stage,
        "active_sessions": len(request.app.state.sessions),
    }


@router.post("/sessions", response_model=ChatResponse)
async def start_session(request: Request):
    """Open a session and return the greeting with the first prompt."""
    session, token = resolve_session(request.app.state.sessions, None)
    outcome = request.app.state.orchestrator.greeting(session)
    return ChatResponse.from_outcome(outcome, token)


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, request: Request):
    if not body.message or not body.message.strip():
        raise ValidationError()
    session, token = resolve_session(request.app.state.sessions, body.session_token)
    if body.sender:
        logger.debug("Session %s message labelled sender=%s", session.session_id, body.sender)
    outcome = await request.app.state.orchestrator.handle_message(session, body.message)
    return ChatResponse.from_outcome(outcome, token)


@router.get("/admin/conversations", response_model=list[TranscriptEntry])
async def get_conversations(session_id: str | None = Query(None, description="Only this session's messages")):
    """Return the full transcript ordered by timestamp."""
    try:
        messages = await database.list_messages(session_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="Database not ready.") from exc
    return [asdict(m) for m in messages]
