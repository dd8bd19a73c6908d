"""FastAPI application: webhook, dispute and defense endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .auth import verify_api_key, limiter, OPERATOR_RATE_LIMIT
from .connectors.base import GatewaySubmissionError
from .database import init_db, close_db
from .dependencies import close_collaborators, get_defense_service
from .lifecycle import InvalidTransitionError
from .models import DefenseSource, DefenseStatus
from .reconciliation.api import router as disputes_router
from .services import ActiveDefenseConflictError, DefenseService, DefenseNotFoundError, ParentDispute
from .store import DisputeNotFoundError
from .webhooks.api import router as webhooks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_collaborators()
    await close_db()


app = FastAPI(title="Chargeback Reconciliation API", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(webhooks_router)
app.include_router(disputes_router)


@app.exception_handler(DisputeNotFoundError)
@app.exception_handler(DefenseNotFoundError)
async def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "entity": exc.entity_type,
            "current": exc.current,
            "target": exc.target,
        },
    )


@app.exception_handler(ActiveDefenseConflictError)
async def active_defense_conflict_handler(request: Request, exc: ActiveDefenseConflictError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "dispute_id": exc.dispute_id},
    )


@app.exception_handler(GatewaySubmissionError)
async def gateway_error_handler(request: Request, exc: GatewaySubmissionError):
    return JSONResponse(
        status_code=502,
        content={"detail": f"Gateway submission failed: {exc}"},
    )


class CreateDefenseBody(BaseModel):
    dispute_id: str = Field(..., min_length=1, description="Gateway dispute ID")
    content: str = Field(..., min_length=1, description="Defense document body")
    source: DefenseSource = DefenseSource.MANUAL
    contestation_type: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = None
    parent: Optional[ParentDispute] = Field(
        None, description="Dispute fields used if the dispute is not stored yet"
    )


class ApproveDefenseBody(BaseModel):
    submit: bool = Field(False, description="Submit to the gateway in the same step")


class DefenseOutcomeBody(BaseModel):
    outcome: Literal["won", "lost"]


@app.get("/health")
async def health():
    return {"status": "healthy", "service": "chargeback-recon"}


@app.post("/defenses", status_code=201)
@limiter.limit(OPERATOR_RATE_LIMIT)
async def create_defense(
    request: Request,
    body: CreateDefenseBody,
    service: DefenseService = Depends(get_defense_service),
    api_key: str = Depends(verify_api_key),
):
    """
    Save a drafted defense for a dispute.

    Creates the owning dispute if it has not been received yet, and
    supersedes any earlier defense that was never submitted.
    """
    defense = await service.create_defense(
        dispute_id=body.dispute_id,
        content=body.content,
        source=body.source,
        contestation_type=body.contestation_type,
        form_data=body.form_data,
        parent=body.parent,
    )
    return defense.to_dict()


@app.get("/defenses")
async def list_defenses(
    source: Optional[DefenseSource] = Query(default=None),
    status: Optional[DefenseStatus] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: DefenseService = Depends(get_defense_service),
    api_key: str = Depends(verify_api_key),
):
    defenses = await service.list_defenses(source=source, status=status, limit=limit, offset=offset)
    return {"defenses": [d.to_dict() for d in defenses], "count": len(defenses)}


@app.get("/defenses/{defense_id}")
async def get_defense(
    defense_id: str,
    service: DefenseService = Depends(get_defense_service),
    api_key: str = Depends(verify_api_key),
):
    """A defense with its owning dispute (null if evicted)."""
    defense, dispute = await service.get_defense(defense_id)
    return {
        "defense": defense.to_dict(),
        "dispute": dispute.model_dump(mode="json") if dispute else None,
    }


@app.get("/defenses/{defense_id}/history")
async def get_defense_history(
    defense_id: str,
    service: DefenseService = Depends(get_defense_service),
    api_key: str = Depends(verify_api_key),
):
    history = await service.get_history(defense_id)
    return {"defense_id": defense_id, "history": [h.to_dict() for h in history]}


@app.post("/defenses/{defense_id}/approve")
@limiter.limit(OPERATOR_RATE_LIMIT)
async def approve_defense(
    request: Request,
    defense_id: str,
    body: ApproveDefenseBody,
    service: DefenseService = Depends(get_defense_service),
    api_key: str = Depends(verify_api_key),
):
    """Approve a defense; with ``submit`` it is also handed to the gateway."""
    defense = await service.approve(defense_id, submit=body.submit)
    return defense.to_dict()


@app.post("/defenses/{defense_id}/submit")
@limiter.limit(OPERATOR_RATE_LIMIT)
async def submit_defense(
    request: Request,
    defense_id: str,
    service: DefenseService = Depends(get_defense_service),
    api_key: str = Depends(verify_api_key),
):
    defense = await service.submit(defense_id)
    return defense.to_dict()


@app.post("/defenses/{defense_id}/outcome")
async def record_defense_outcome(
    defense_id: str,
    body: DefenseOutcomeBody,
    service: DefenseService = Depends(get_defense_service),
    api_key: str = Depends(verify_api_key),
):
    defense = await service.record_outcome(defense_id, DefenseStatus(body.outcome))
    return defense.to_dict()
