"""WebSocket handler: runs chat exchanges over a persistent connection."""
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from trialgate.api.routes import resolve_session
from trialgate.errors import TrialGateError
from trialgate.models.session import ChatOutcome
from trialgate.protocol import reveal

logger = logging.getLogger(__name__)


async def websocket_chat(websocket: WebSocket):
    await websocket.accept()

    orchestrator = websocket.app.state.orchestrator

    async def ws_send(data: dict):
        await websocket.send_text(json.dumps(data))

    async def ws_recv() -> dict:
        raw = await websocket.receive_text()
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            return {"message": raw}
        return msg if isinstance(msg, dict) else {"message": str(msg)}

    try:
        session, token = resolve_session(
            websocket.app.state.sessions, websocket.query_params.get("session_token")
        )
    except TrialGateError as exc:
        await ws_send({"type": "error", "message": exc.public_message})
        await websocket.close(code=4401)
        return

    greeting = orchestrator.greeting(session)
    await ws_send({
        "type": "session",
        "sessionToken": token,
        "stage": greeting.stage,
        "botResponse": greeting.reply,
    })

    try:
        while True:
            msg = await ws_recv()
            try:
                outcome = await orchestrator.handle_message(session, msg.get("message"))
            except TrialGateError as exc:
                await ws_send({"type": "error", "message": exc.public_message})
                continue
            await _send_outcome(ws_send, outcome)
    except WebSocketDisconnect:
        logger.info("Client disconnected session=%s", session.session_id)


async def _send_outcome(ws_send, outcome: ChatOutcome) -> None:
    if not outcome.steps:
        await ws_send({
            "type": "reply",
            "botResponse": outcome.reply,
            "stage": outcome.stage,
            "unlocked": outcome.unlocked,
        })
        return

    async def emit(step):
        await ws_send({
            "type": "reveal",
            "kind": step.kind,
            "content": step.content,
            "stage": outcome.stage,
        })

    await reveal.play(outcome.steps, emit)
