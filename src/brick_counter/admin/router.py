"""Admin router — inspect and adjust guard state and the counter.

Endpoints
---------
GET    /admin/blocked                 → active blocks with time remaining
DELETE /admin/blocked/{client_id}     → lift a block
GET    /admin/failures                → clients with pending failures
DELETE /admin/failures/{client_id}    → forget a client's failures
PUT    /admin/counter                 → overwrite the counter
GET    /admin/counter/history         → recent counter snapshots
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from brick_counter.database.repository import CounterRepository
from brick_counter.errors import PersistenceError
from brick_counter.services.attempt_guard import AttemptGuard
from brick_counter.services.counter_store import CounterStore

logger = logging.getLogger(__name__)


def require_admin(request: Request, x_admin_token: str | None = Header(None)) -> None:
    """Reject the call unless it carries the configured admin token."""
    expected = request.app.state.settings.admin_token
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        logger.warning("Rejected admin call to %s", request.url.path)
        raise HTTPException(status_code=403, detail="Forbidden")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _guard(request: Request) -> AttemptGuard:
    return request.app.state.attempt_guard


def _store(request: Request) -> CounterStore:
    return request.app.state.counter_store


def _repository(request: Request) -> CounterRepository:
    return request.app.state.repository


# ── Response / request models ────────────────────────────

class BlockedClient(BaseModel):
    client_id: str
    blocked_at: float
    unblock_at: float
    remaining_seconds: float


class PendingFailures(BaseModel):
    client_id: str
    attempts: int
    first_attempt_at: float
    last_attempt_at: float


class CounterUpdate(BaseModel):
    value: int = Field(..., ge=0)


class CounterValue(BaseModel):
    value: int


class CounterSnapshot(BaseModel):
    logged_at: datetime
    value: int


class Cleared(BaseModel):
    client_id: str
    cleared: bool


# ── Endpoints ────────────────────────────────────────────

@router.get("/blocked", response_model=list[BlockedClient])
async def list_blocked(guard: AttemptGuard = Depends(_guard)):
    """List blocked clients and how long each block has left."""
    now = guard.clock()
    return [
        BlockedClient(
            client_id=client_id,
            blocked_at=block.blocked_at,
            unblock_at=block.unblock_at,
            remaining_seconds=round(block.remaining(now), 3),
        )
        for client_id, block in sorted(guard.blocked_clients(now).items())
    ]


@router.delete("/blocked/{client_id}", response_model=Cleared)
async def clear_block(client_id: str, guard: AttemptGuard = Depends(_guard)):
    """Lift a block before it runs out."""
    if not guard.clear_block(client_id):
        raise HTTPException(status_code=404, detail="Client is not blocked")
    logger.info("Admin lifted block for %s", client_id)
    return Cleared(client_id=client_id, cleared=True)


@router.get("/failures", response_model=list[PendingFailures])
async def list_failures(guard: AttemptGuard = Depends(_guard)):
    """List clients that have recent failed attempts."""
    return [
        PendingFailures(
            client_id=client_id,
            attempts=len(attempts),
            first_attempt_at=attempts[0],
            last_attempt_at=attempts[-1],
        )
        for client_id, attempts in sorted(guard.pending_failures().items())
    ]


@router.delete("/failures/{client_id}", response_model=Cleared)
async def clear_failures(client_id: str, guard: AttemptGuard = Depends(_guard)):
    """Forget a client's failed attempts."""
    if not guard.clear_failures(client_id):
        raise HTTPException(status_code=404, detail="Client has no pending failures")
    logger.info("Admin cleared failures for %s", client_id)
    return Cleared(client_id=client_id, cleared=True)


@router.put("/counter", response_model=CounterValue)
async def set_counter(body: CounterUpdate, store: CounterStore = Depends(_store)):
    """Overwrite the counter value."""
    try:
        value = await store.set(body.value)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail="Counter storage unavailable") from exc
    logger.info("Admin set counter to %s", value)
    return CounterValue(value=value)


@router.get("/counter/history", response_model=list[CounterSnapshot])
async def counter_history(
    limit: int = Query(20, ge=1, le=500),
    repository: CounterRepository = Depends(_repository),
):
    """Return the most recent counter snapshots, newest first."""
    try:
        entries = await repository.recent_log_entries(limit)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail="Counter storage unavailable") from exc
    return [CounterSnapshot(logged_at=entry.logged_at, value=entry.value) for entry in entries]
