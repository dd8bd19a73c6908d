"""Shopify Admin REST client used as the order lookup collaborator."""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from ..models import OrderRecord, LineItem, Fulfillment, TrackingInfo
from .base import OrderLookupClient, OrderLookupError, normalize_order_name

logger = logging.getLogger(__name__)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def order_from_shopify(raw: Dict[str, Any]) -> OrderRecord:
    """Convert a Shopify REST order into an OrderRecord."""
    line_items = [
        LineItem(
            title=item.get("title") or item.get("name") or "Item",
            quantity=int(item.get("quantity") or 1),
            price=_to_decimal(item.get("price")),
            sku=item.get("sku") or None,
        )
        for item in raw.get("line_items") or []
    ]

    fulfillments = []
    for f in raw.get("fulfillments") or []:
        tracking = None
        if f.get("tracking_number") or f.get("tracking_company") or f.get("tracking_url"):
            tracking = TrackingInfo(
                number=f.get("tracking_number") or None,
                carrier=f.get("tracking_company") or None,
                url=f.get("tracking_url") or None,
            )
        fulfillments.append(Fulfillment(
            status=f.get("status"),
            created_at=_to_datetime(f.get("created_at")),
            tracking=tracking,
        ))

    customer = raw.get("customer") or {}
    return OrderRecord(
        id=str(raw.get("id")),
        display_name=raw.get("name") or "",
        email=raw.get("email") or customer.get("email") or None,
        total_amount=_to_decimal(raw.get("total_price")),
        currency=raw.get("currency"),
        line_items=line_items,
        fulfillments=fulfillments,
    )


class ShopifyOrderLookup(OrderLookupClient):
    """
    Order lookup against the Shopify Admin REST API.

    Every request is bounded by ``timeout``; transport errors, timeouts and
    non-2xx responses surface as OrderLookupError.
    """

    def __init__(
        self,
        store_domain: str,
        access_token: str,
        api_version: str = "2024-01",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not store_domain or not access_token:
            raise ValueError("store_domain and access_token are required")
        domain = store_domain.replace("https://", "").replace("http://", "").rstrip("/")
        self.base_url = f"https://{domain}/admin/api/{api_version}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Shopify-Access-Token": access_token,
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _list_orders(self, params: Dict[str, str]) -> List[Dict[str, Any]]:
        query = {"status": "any", **params}
        try:
            response = await self._client.get("/orders.json", params=query)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise OrderLookupError("Shopify request timed out") from e
        except httpx.HTTPStatusError as e:
            raise OrderLookupError(
                f"Shopify returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise OrderLookupError(f"Shopify request failed: {e}") from e
        return body.get("orders") or []

    async def get_order_by_name(self, name: str) -> Optional[OrderRecord]:
        wanted = normalize_order_name(name)
        orders = await self._list_orders({"name": wanted})
        for raw in orders:
            if (raw.get("name") or "") == wanted:
                return order_from_shopify(raw)
        logger.info(f"Shopify order {wanted} not found")
        return None

    async def get_orders_by_email(self, email: str) -> List[OrderRecord]:
        orders = await self._list_orders({"email": email.strip()})
        return [order_from_shopify(raw) for raw in orders]

    async def aclose(self) -> None:
        await self._client.aclose()
