"""FastAPI application with lifespan, WebSocket, and REST routes."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trialgate.api.routes import router
from trialgate.api.websocket import websocket_chat
from trialgate.config import settings
from trialgate.database import close_db, get_db
from trialgate.errors import StoreUnavailable, TrialGateError, ValidationError
from trialgate.middleware.rate_limit import RateLimitMiddleware
from trialgate.models.challenge import load_challenges
from trialgate.protocol.gatekeeper import Gatekeeper
from trialgate.protocol.orchestrator import Orchestrator
from trialgate.services.relay import build_relay
from trialgate.services.sessions import SessionRegistry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("trialgate starting: initialising transcript store")
    try:
        await get_db()
    except StoreUnavailable:
        # Keep serving; chat turns and the admin view report 503 until the store is back.
        logger.error("Transcript store unavailable at startup (DATABASE_URL=%s)", settings.database_url)

    gatekeeper = Gatekeeper(load_challenges(settings.challenges_path))
    app.state.sessions = SessionRegistry(idle_timeout_s=settings.session_idle_timeout_s)
    app.state.orchestrator = Orchestrator(gatekeeper, build_relay())
    logger.info("Loaded %d challenges (mock_mode=%s)", gatekeeper.terminal_stage, settings.use_mock_relay)
    yield
    logger.info("trialgate shutting down: closing transcript store")
    await close_db()


app = FastAPI(
    title="trialgate",
    description="Challenge-gated birthday reveal with a resilient AI relay",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RateLimitMiddleware)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

app.include_router(router)
# Browser front-ends call the /api-prefixed paths.
app.include_router(router, prefix="/api")


@app.exception_handler(TrialGateError)
async def trialgate_error_handler(request: Request, exc: TrialGateError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": ValidationError.public_message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.websocket("/ws/chat")
async def ws_chat(websocket: WebSocket):
    await websocket_chat(websocket)


def run() -> None:
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
