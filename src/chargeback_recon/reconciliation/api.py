"""Operator endpoints for disputes and reconciliation."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..auth import verify_api_key, limiter, OPERATOR_RATE_LIMIT
from ..dependencies import get_reconciliation_service
from ..models import DisputeEvent
from .models import ManualMatchRequest, UnifiedDisputeView, UnifiedDisputeList
from .service import ReconciliationService, OrderLookupUnavailableError, OrderNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.get("", response_model=List[DisputeEvent])
async def list_disputes(
    service: ReconciliationService = Depends(get_reconciliation_service),
    api_key: str = Depends(verify_api_key),
):
    """All stored disputes, newest first."""
    return await service.list_disputes()


@router.get("/unified", response_model=UnifiedDisputeList)
async def unified_disputes(
    refresh: bool = Query(default=False, description="Re-run matching for unmatched disputes"),
    service: ReconciliationService = Depends(get_reconciliation_service),
    api_key: str = Depends(verify_api_key),
):
    """
    Every dispute joined with its matched order, match method and the
    resolution attempts trail.
    """
    return await service.unified_views(refresh=refresh)


@router.get("/{dispute_id}", response_model=DisputeEvent)
async def get_dispute(
    dispute_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    api_key: str = Depends(verify_api_key),
):
    return await service.get_dispute(dispute_id)


@router.get("/{dispute_id}/unified", response_model=UnifiedDisputeView)
async def get_unified_dispute(
    dispute_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    api_key: str = Depends(verify_api_key),
):
    return await service.unified_view(dispute_id)


@router.post("/{dispute_id}/reconcile", response_model=UnifiedDisputeView)
@limiter.limit(OPERATOR_RATE_LIMIT)
async def reconcile_dispute(
    request: Request,
    dispute_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    api_key: str = Depends(verify_api_key),
):
    """Run the automatic matching chain for one dispute now."""
    try:
        dispute = await service.reconcile(dispute_id)
    except OrderLookupUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return UnifiedDisputeView.from_dispute(dispute)


@router.post("/{dispute_id}/match", response_model=UnifiedDisputeView)
@limiter.limit(OPERATOR_RATE_LIMIT)
async def manual_match(
    request: Request,
    dispute_id: str,
    body: ManualMatchRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
    api_key: str = Depends(verify_api_key),
):
    """
    Match a dispute to an operator-supplied order number.

    A miss returns 404 with the lookup attempts and stores nothing.
    """
    try:
        dispute = await service.manual_match(dispute_id, body.order_number)
    except OrderLookupUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=404,
            detail={"message": str(e), "attempts": e.attempts},
        )
    logger.info(f"Operator matched dispute {dispute_id} to {body.order_number}")
    return UnifiedDisputeView.from_dispute(dispute)
