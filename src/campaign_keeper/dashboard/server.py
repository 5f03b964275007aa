"""HTTP API for the campaign: state, usage, events and turns."""

from __future__ import annotations

from typing import Any

from fastapi import Body, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..campaign.turn import TurnOrchestrator
from ..errors import MalformedOutputError, ProviderError, StorageError

_ERROR_STATUS: dict[type[Exception], int] = {
    StorageError: 500,
    ProviderError: 502,
    MalformedOutputError: 502,
}


def _error_response(exc: Exception) -> JSONResponse:
    status = next((code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    body: dict[str, Any] = {"error": getattr(exc, "notice", "Server error"), "detail": str(exc)}
    if isinstance(exc, ProviderError) and exc.status_code is not None:
        body["provider_status"] = exc.status_code
    return JSONResponse(status_code=status, content=body)


def create_app(
    orchestrator: TurnOrchestrator,
    *,
    cors_origins: list[str] | None = None,
    recent_event_limit: int = 500,
) -> FastAPI:
    """Create the API app around a single orchestrator."""

    app = FastAPI(title="Campaign Keeper", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True}

    @app.get("/api/state")
    async def state() -> Any:
        try:
            return orchestrator.state_store.read()
        except StorageError as exc:
            return _error_response(exc)

    @app.get("/api/usage")
    async def usage() -> dict[str, Any]:
        ledger = orchestrator.usage_store.current()
        return {
            **orchestrator.usage_payload(ledger.month, ledger.total_tokens),
            "warn_threshold": orchestrator.gate.warn_threshold,
            "blocked": orchestrator.gate.pre_call(ledger).blocked,
        }

    @app.get("/api/events")
    async def events(limit: int = Query(default=100, ge=1, le=2000)) -> dict[str, Any]:
        if orchestrator.event_logger is None:
            return {"success": True, "events": [], "count": 0}
        items = orchestrator.event_logger.read_recent(min(limit, recent_event_limit))
        return {"success": True, "events": items, "count": len(items)}

    @app.post("/api/turn")
    async def turn(payload: dict[str, Any] | None = Body(default=None)) -> Any:
        player_input = (payload or {}).get("playerInput")
        if not isinstance(player_input, str) or not player_input.strip():
            return JSONResponse(status_code=400, content={"error": "playerInput (string) is required"})
        try:
            result = await orchestrator.process_turn(player_input)
        except (StorageError, ProviderError, MalformedOutputError) as exc:
            return _error_response(exc)
        if result.blocked:
            return JSONResponse(status_code=429, content=result.to_dict())
        return result.to_dict()

    return app
