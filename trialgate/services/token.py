"""JWT encode/decode using PyJWT."""
import time
import jwt

from trialgate.config import settings

_ALGORITHM = "HS256"


def create_token(session_id: str) -> str:
    now = int(time.time())
    payload = {
        "session_id": session_id,
        "iat": now,
        "exp": now + settings.session_token_ttl_s,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.exceptions on invalid/expired."""
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[_ALGORITHM])
    if not payload.get("session_id"):
        raise jwt.InvalidTokenError("token carries no session_id")
    return payload
