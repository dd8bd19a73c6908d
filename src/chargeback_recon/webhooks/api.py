"""Webhook endpoints for the payment gateway and the e-commerce platform.

Both endpoints authenticate by payload signature, not by API key. Once a
request is authenticated and stored the sender always gets a 200 so it does
not redeliver in a loop; later processing failures are recorded on the
dispute instead.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from ..auth import limiter, WEBHOOK_RATE_LIMIT
from ..config import Settings
from ..dependencies import get_ingestion_service, get_reconciliation_service, get_settings_dep
from ..reconciliation.service import ReconciliationService
from .events import MalformedPayloadError
from .handlers import IngestionService, SignatureVerificationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/pagarme")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def pagarme_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    ingestion: IngestionService = Depends(get_ingestion_service),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
    settings: Settings = Depends(get_settings_dep),
):
    """
    Receive a dispute notification from the payment gateway.

    Unknown event types are acknowledged with ``ignored: true``. Creation
    events schedule the automatic resolver in the background when enabled
    and an order lookup client is configured.
    """
    raw_body = await request.body()
    try:
        ack = await ingestion.handle_dispute(raw_body, request.headers)
    except SignatureVerificationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except MalformedPayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if ack.reconcile and settings.auto_reconcile and reconciliation.lookup is not None:
        background_tasks.add_task(ingestion.auto_reconcile, reconciliation, ack.dispute_id)

    return ack.model_dump(exclude_none=True)


@router.post("/shopify")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def shopify_webhook(
    request: Request,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """
    Receive an order/fulfillment event from the e-commerce platform.

    Only ``orders/fulfilled`` and ``fulfillments/create`` are acted on; the
    event enriches the best-matching stored dispute.
    """
    raw_body = await request.body()
    try:
        ack = await ingestion.handle_fulfillment(raw_body, request.headers)
    except SignatureVerificationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except MalformedPayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ack.model_dump(exclude_none=True)
