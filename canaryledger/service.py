"""
HTTP surface for the canary ledger (FastAPI).

Caller identity comes from the X-Caller-Id header; an integrating deployment
puts an authenticating proxy in front of this service and sets it there.
Fingerprints travel as hex and credentials as base64.

Run with:
    uvicorn canaryledger.service:app
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import config
from .errors import FailureCode, LedgerError, StorageError
from .events import EventKind
from .hashing import b64d
from .logging_config import audit_log, configure_logging, set_request_id
from .rate_limit import RateLimiter
from .system import LedgerSystem, build_system

logger = logging.getLogger(__name__)

# Status code per failure reason; StillLocked and RateLimited share a category.
HTTP_STATUS: Dict[FailureCode, int] = {
    FailureCode.INVALID_RECIPIENT: 400,
    FailureCode.UNLOCK_IN_PAST: 400,
    FailureCode.UNLOCK_OUT_OF_RANGE: 400,
    FailureCode.INVALID_SECURITY_LEVEL: 400,
    FailureCode.INVALID_THREAT_LEVEL: 400,
    FailureCode.INVALID_FINGERPRINT: 400,
    FailureCode.MISSING_CREDENTIAL: 400,
    FailureCode.UNAUTHORIZED: 403,
    FailureCode.STILL_LOCKED: 423,
    FailureCode.RATE_LIMITED: 429,
    FailureCode.INVALID_CREDENTIAL: 401,
    FailureCode.NOT_FOUND: 404,
}


# ============================================================
# Request models
# ============================================================

class StoreMessageRequest(BaseModel):
    recipient: str
    fingerprint_hex: str
    credential_b64: str
    unlock_time: int
    security_level: int


class AuthenticateRequest(BaseModel):
    auth_credential_b64: str


class CanaryUpdateRequest(BaseModel):
    threat_level: int
    oracle_credential_b64: str


def _malformed(field: str) -> HTTPException:
    return HTTPException(400, {"reason": "MALFORMED_ENCODING", "field": field})


def decode_hex(value: str, field: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise _malformed(field)


def decode_b64(value: str, field: str) -> bytes:
    try:
        return b64d(value)
    except ValueError:
        raise _malformed(field)


# ============================================================
# Application
# ============================================================

def create_app(
    system: Optional[LedgerSystem] = None,
    time_source: Callable[[], float] = time.time
) -> FastAPI:
    """
    Build the HTTP application.

    When no system is given, one is assembled from environment configuration
    at startup.
    """
    app = FastAPI(title="Canary Ledger", debug=config.is_debug())
    app.state.system = system

    store_limiter = RateLimiter(config.STORE_RPM, time_source=time_source)
    auth_limiter = RateLimiter(config.AUTHENTICATE_RPM, time_source=time_source)
    canary_limiter = RateLimiter(config.CANARY_RPM, time_source=time_source)

    @app.on_event("startup")
    def _startup():
        if app.state.system is None:
            configure_logging(config.LOG_LEVEL, config.LOG_JSON, config.LOG_FILE)
            app.state.system = build_system()

    @app.on_event("shutdown")
    def _shutdown():
        if app.state.system is not None:
            app.state.system.close()

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-Id"))
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError):
        headers = {}
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        return JSONResponse(
            status_code=HTTP_STATUS.get(exc.reason, 400),
            content={"detail": exc.to_dict()},
            headers=headers,
        )

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError):
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": {"reason": "STORAGE_UNAVAILABLE"}})

    def _system() -> LedgerSystem:
        return app.state.system

    def _throttle(limiter: RateLimiter, caller: str, endpoint: str) -> None:
        result = limiter.check(caller)
        if not result.allowed:
            audit_log.rate_limit_exceeded(caller, endpoint)
            retry_after = int(result.retry_after or 0) + 1
            raise HTTPException(
                429,
                {"reason": "RATE_LIMIT", "retry_after": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

    # --------------------------------------------------------
    # Mutating operations
    # --------------------------------------------------------

    @app.post("/messages", status_code=201)
    def store_message(req: StoreMessageRequest, x_caller_id: str = Header(...)):
        _throttle(store_limiter, x_caller_id, "store_message")
        system = _system()
        message_id = system.store_message(
            sender=x_caller_id,
            fingerprint=decode_hex(req.fingerprint_hex, "fingerprint_hex"),
            credential=decode_b64(req.credential_b64, "credential_b64"),
            recipient=req.recipient,
            unlock_time=req.unlock_time,
            security_level=req.security_level,
        )
        return system.get_message(message_id).to_dict()

    @app.post("/messages/{message_id}/authenticate")
    def authenticate_message(message_id: int, req: AuthenticateRequest, x_caller_id: str = Header(...)):
        _throttle(auth_limiter, x_caller_id, "authenticate_message")
        system = _system()
        credential = decode_b64(req.auth_credential_b64, "auth_credential_b64")
        authenticated = system.authenticate_message(x_caller_id, message_id, credential)
        return {"authenticated": authenticated, "message": system.get_message(message_id).to_dict()}

    @app.post("/canary")
    def update_canary(req: CanaryUpdateRequest, x_caller_id: str = Header(...)):
        _throttle(canary_limiter, x_caller_id, "update_canary")
        credential = decode_b64(req.oracle_credential_b64, "oracle_credential_b64")
        return _system().update_canary(req.threat_level, credential).to_dict()

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    @app.get("/messages/{message_id}")
    def get_message(message_id: int) -> Dict[str, Any]:
        system = _system()
        data = system.get_message(message_id).to_dict()
        data["state"] = system.queries.message_state(message_id).value
        return data

    @app.get("/canary")
    def get_canary_status() -> Dict[str, Any]:
        system = _system()
        data = system.get_canary_status().to_dict()
        data["seconds_until_next_update"] = system.canary.seconds_until_next_update()
        return data

    @app.get("/senders/{identity}/count")
    def get_sender_count(identity: str) -> Dict[str, Any]:
        return {"sender": identity, "count": _system().get_sender_count(identity)}

    @app.get("/events")
    def events(
        kind: Optional[EventKind] = None,
        message_id: Optional[int] = None,
        since_seq: int = 0
    ) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in _system().queries.events(kind, message_id, since_seq)]

    @app.get("/events/verify")
    def verify_events() -> Dict[str, Any]:
        return _system().queries.verify_event_chain().to_dict()

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "env": config.ENV, **_system().queries.stats()}

    return app


app = create_app()
