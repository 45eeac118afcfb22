"""
Badge Registry — HTTP API.

FastAPI application exposing the registry:
- Issue, revoke, expire, and transfer badges
- Membership and active-membership queries
- Tier validity and issuer administration
- Pause switch
- Event ledger listing and chain verification

The acting identity is taken from the `X-Caller` header. Authentication of
that header is the job of the gateway in front of this service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from badge_registry.config import settings
from badge_registry.registry.errors import RegistryError
from badge_registry.registry.schema import Tier, tier_name

logger = logging.getLogger(__name__)


# ── Pydantic request / response models ────────────────────────


class IssueRequest(BaseModel):
    recipient: str
    tier: Tier
    custom_expiry: int | None = None
    metadata_ref: str = ""


class TransferRequest(BaseModel):
    sender: str
    recipient: str


class TierValidityRequest(BaseModel):
    duration: int


class IdentityRequest(BaseModel):
    identity: str


class BaseUriRequest(BaseModel):
    base_uri: str


class ApiState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.registry: Any = None
        self.ledger_service: Any = None
        self.startup_time: datetime = datetime.now(timezone.utc)


state = ApiState()


ERROR_STATUS = {
    "Unauthorized": 403,
    "NotFound": 404,
    "ZeroRecipient": 400,
    "InvalidExpiry": 400,
    "InvalidDuration": 400,
    "InvalidTransfer": 400,
    "InvalidGrant": 400,
    "NotOperational": 409,
    "InvalidPauseState": 409,
}


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup & shutdown lifecycle — build the registry if none was injected."""
    if state.registry is None:
        from badge_registry.main import build_registry

        state.registry, state.ledger_service = build_registry(settings)
        logger.info("API registry initialized: admin=%s", settings.admin_identity)
    yield
    logger.info("Badge Registry API shut down")


app = FastAPI(
    title="Badge Registry",
    description="Membership badge issuance, expiry, and transfer",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RegistryError)
async def registry_error_handler(request: Request, exc: RegistryError):
    status = ERROR_STATUS.get(exc.kind, 400)
    return JSONResponse(status_code=status, content={"error": exc.kind, "detail": str(exc)})


def _registry():
    if state.registry is None:
        raise HTTPException(status_code=503, detail="Registry not initialized")
    return state.registry


# ── Routes: Badges ─────────────────────────────────────────────


@app.post("/api/badges", status_code=201)
async def issue_badge(req: IssueRequest, x_caller: str = Header(...)):
    membership_id = _registry().issue(
        x_caller, req.recipient, req.tier, req.custom_expiry, req.metadata_ref
    )
    return {"membership_id": membership_id}


@app.delete("/api/badges/{membership_id}")
async def revoke_badge(membership_id: int, x_caller: str = Header(...)):
    _registry().revoke(x_caller, membership_id)
    return {"membership_id": membership_id, "status": "revoked"}


@app.post("/api/badges/{membership_id}/expire")
async def expire_badge(membership_id: int):
    """Permissionless expiry check."""
    expired = _registry().check_and_expire(membership_id)
    return {"membership_id": membership_id, "expired": expired}


@app.post("/api/badges/{membership_id}/transfer")
async def transfer_badge(membership_id: int, req: TransferRequest, x_caller: str = Header(...)):
    _registry().transfer(x_caller, req.sender, req.recipient, membership_id)
    return {"membership_id": membership_id, "owner": req.recipient}


@app.get("/api/badges/{membership_id}")
async def badge_info(membership_id: int):
    registry = _registry()
    info = registry.get_membership_info(membership_id)
    return {
        **info.model_dump(mode="json"),
        "tier_name": tier_name(info.tier),
        "owner": registry.owner_of(membership_id),
        "token_uri": registry.token_uri(membership_id),
    }


# ── Routes: Members ────────────────────────────────────────────


@app.get("/api/members/{owner}/active")
async def active_membership(owner: str):
    return _registry().get_active_membership(owner).model_dump(mode="json")


@app.get("/api/members/{owner}/valid")
async def valid_membership(owner: str):
    return {"owner": owner, "valid": _registry().has_valid_membership(owner)}


# ── Routes: Administration ─────────────────────────────────────


@app.get("/api/tiers")
async def list_tiers():
    registry = _registry()
    return {
        "tiers": [
            {"tier": t.value, "name": t.display_name, "validity": registry.tier_validity(t)}
            for t in Tier
        ]
    }


@app.put("/api/tiers/{tier}/validity")
async def update_tier_validity(tier: int, req: TierValidityRequest, x_caller: str = Header(...)):
    if tier not in {t.value for t in Tier}:
        raise HTTPException(status_code=404, detail=f"Unknown tier: {tier}")
    _registry().set_tier_validity(x_caller, Tier(tier), req.duration)
    return {"tier": tier, "validity": req.duration}


@app.post("/api/issuers")
async def add_issuer(req: IdentityRequest, x_caller: str = Header(...)):
    _registry().add_issuer(x_caller, req.identity)
    return {"identity": req.identity, "issuer": True}


@app.delete("/api/issuers/{identity}")
async def remove_issuer(identity: str, x_caller: str = Header(...)):
    _registry().remove_issuer(x_caller, identity)
    return {"identity": identity, "issuer": False}


@app.put("/api/base-uri")
async def update_base_uri(req: BaseUriRequest, x_caller: str = Header(...)):
    _registry().set_base_uri(x_caller, req.base_uri)
    return {"base_uri": req.base_uri}


@app.post("/api/pause")
async def pause(x_caller: str = Header(...)):
    _registry().pause(x_caller)
    return {"paused": True}


@app.post("/api/unpause")
async def unpause(x_caller: str = Header(...)):
    _registry().unpause(x_caller)
    return {"paused": False}


# ── Routes: Event Ledger ───────────────────────────────────────


@app.get("/api/events")
async def api_events(limit: int = 50):
    if state.ledger_service is None:
        return JSONResponse({"entries": [], "message": "Event ledger not initialized"})

    entries = state.ledger_service.get_latest_entries(limit=limit)
    return JSONResponse({
        "entries": [
            {
                "sequence_number": e.sequence_number,
                "event_type": e.event_type,
                "actor": e.actor,
                "registry_time": e.registry_time,
                "payload": e.payload,
                "entry_hash": e.entry_hash[:16] + "...",
            }
            for e in entries
        ],
        "total": state.ledger_service.get_entry_count(),
    })


@app.get("/api/events/verify")
async def api_events_verify():
    if state.ledger_service is None:
        raise HTTPException(status_code=503, detail="Event ledger not initialized")
    is_valid, verified, message = state.ledger_service.verify_chain()
    return {"valid": is_valid, "entries_verified": verified, "message": message}


# ── Health Check ───────────────────────────────────────────────


@app.get("/health")
async def health():
    """Health check endpoint."""
    registry = state.registry
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": (datetime.now(timezone.utc) - state.startup_time).total_seconds(),
        "registry_available": registry is not None,
        "name": registry.name if registry is not None else None,
        "symbol": registry.symbol if registry is not None else None,
        "paused": registry.paused if registry is not None else None,
        "total_supply": registry.total_supply() if registry is not None else 0,
        "ledger_available": state.ledger_service is not None,
    })
