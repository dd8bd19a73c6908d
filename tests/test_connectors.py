"""Tests for order lookup and gateway collaborators."""

from decimal import Decimal

import httpx
import pytest

from chargeback_recon.config import Settings
from chargeback_recon.connectors import (
    GatewaySubmissionError,
    OrderLookupError,
    PagarmeGateway,
    ShopifyOrderLookup,
    SimulatorConfig,
    SimulatorGateway,
    SimulatorOrderLookup,
    build_gateway,
    build_order_lookup,
    normalize_order_name,
    order_from_shopify,
)

from helpers import make_order

SHOPIFY_ORDER = {
    "id": 450789469,
    "name": "#1001",
    "email": "a@x.com",
    "total_price": "149.00",
    "currency": "BRL",
    "line_items": [
        {"title": "Camiseta", "quantity": 2, "price": "74.50", "sku": "CAM-01"},
    ],
    "fulfillments": [
        {
            "status": "success",
            "created_at": "2026-03-02T10:00:00-03:00",
            "tracking_number": "BR123",
            "tracking_company": "Correios",
            "tracking_url": "https://track/BR123",
        },
    ],
}


def shopify_lookup(handler) -> ShopifyOrderLookup:
    return ShopifyOrderLookup(
        store_domain="https://demo.myshopify.com/",
        access_token="shpat_test",
        transport=httpx.MockTransport(handler),
    )


class TestNormalizeOrderName:
    @pytest.mark.parametrize("raw,expected", [
        ("1001", "#1001"),
        ("#1001", "#1001"),
        ("  1001 ", "#1001"),
    ])
    def test_prefix(self, raw, expected):
        assert normalize_order_name(raw) == expected


class TestOrderFromShopify:
    """Tests for Shopify order mapping."""

    def test_maps_fields(self):
        order = order_from_shopify(SHOPIFY_ORDER)

        assert order.id == "450789469"
        assert order.display_name == "#1001"
        assert order.total_amount == Decimal("149.00")
        assert order.line_items[0].quantity == 2
        assert order.line_items[0].sku == "CAM-01"
        assert order.fulfillments[0].tracking.number == "BR123"
        assert order.fulfillments[0].created_at.tzinfo is not None

    def test_customer_email_fallback(self):
        raw = {"id": 1, "name": "#2", "customer": {"email": "c@x.com"}}
        order = order_from_shopify(raw)
        assert order.email == "c@x.com"
        assert order.total_amount is None
        assert order.fulfillments == []

    def test_fulfillment_without_tracking(self):
        raw = {"id": 1, "name": "#2", "fulfillments": [{"status": "pending"}]}
        assert order_from_shopify(raw).fulfillments[0].tracking is None


class TestShopifyOrderLookup:
    """Tests for the Shopify Admin REST client."""

    async def test_get_order_by_name(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["token"] = request.headers.get("X-Shopify-Access-Token")
            return httpx.Response(200, json={"orders": [SHOPIFY_ORDER]})

        lookup = shopify_lookup(handler)
        order = await lookup.get_order_by_name("1001")
        await lookup.aclose()

        assert order.display_name == "#1001"
        assert seen["token"] == "shpat_test"
        assert seen["url"].host == "demo.myshopify.com"
        assert seen["url"].path == "/admin/api/2024-01/orders.json"
        assert seen["url"].params["name"] == "#1001"
        assert seen["url"].params["status"] == "any"

    async def test_name_requires_exact_match(self):
        def handler(request):
            return httpx.Response(200, json={"orders": [dict(SHOPIFY_ORDER, name="#10010")]})

        lookup = shopify_lookup(handler)
        assert await lookup.get_order_by_name("#1001") is None
        await lookup.aclose()

    async def test_get_orders_by_email_keeps_api_order(self):
        second = dict(SHOPIFY_ORDER, id=2, name="#1002")

        def handler(request):
            assert request.url.params["email"] == "a@x.com"
            return httpx.Response(200, json={"orders": [SHOPIFY_ORDER, second]})

        lookup = shopify_lookup(handler)
        orders = await lookup.get_orders_by_email(" a@x.com ")
        await lookup.aclose()

        assert [o.display_name for o in orders] == ["#1001", "#1002"]

    async def test_http_error_raises_lookup_error(self):
        lookup = shopify_lookup(lambda request: httpx.Response(401, json={"errors": "bad"}))

        with pytest.raises(OrderLookupError, match="HTTP 401"):
            await lookup.get_orders_by_email("a@x.com")
        await lookup.aclose()

    async def test_timeout_raises_lookup_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        lookup = shopify_lookup(handler)
        with pytest.raises(OrderLookupError, match="timed out"):
            await lookup.get_order_by_name("1001")
        await lookup.aclose()

    async def test_invalid_json_raises_lookup_error(self):
        lookup = shopify_lookup(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(OrderLookupError):
            await lookup.get_orders_by_email("a@x.com")
        await lookup.aclose()

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            ShopifyOrderLookup(store_domain="", access_token="x")


class TestPagarmeGateway:
    """Tests for the gateway defense hand-off."""

    async def test_submit_defense(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = request.content
            return httpx.Response(200, json={"id": "doc_1", "status": "received"})

        gateway = PagarmeGateway(
            api_key="sk_test",
            base_url="https://api.pagar.me/core/v5/",
            transport=httpx.MockTransport(handler),
        )
        response = await gateway.submit_defense("cb_1", b"# Defense")
        await gateway.aclose()

        assert response == {"id": "doc_1", "status": "received"}
        assert seen["path"] == "/core/v5/chargebacks/cb_1/documents"
        assert seen["auth"].startswith("Basic ")
        assert b"defense_cb_1.md" in seen["body"]
        assert b"# Defense" in seen["body"]

    async def test_rejection_raises(self):
        gateway = PagarmeGateway(
            api_key="sk_test",
            transport=httpx.MockTransport(lambda request: httpx.Response(422, json={})),
        )
        with pytest.raises(GatewaySubmissionError, match="HTTP 422"):
            await gateway.submit_defense("cb_1", b"x")
        await gateway.aclose()

    async def test_transport_failure_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = PagarmeGateway(api_key="sk_test", transport=httpx.MockTransport(handler))
        with pytest.raises(GatewaySubmissionError):
            await gateway.submit_defense("cb_1", b"x")
        await gateway.aclose()

    async def test_non_json_response(self):
        gateway = PagarmeGateway(
            api_key="sk_test",
            transport=httpx.MockTransport(lambda request: httpx.Response(201, text="ok")),
        )
        response = await gateway.submit_defense("cb_1", b"x")
        await gateway.aclose()
        assert response == {"status_code": 201, "body": "ok"}

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            PagarmeGateway(api_key="")


class TestSimulators:
    """Tests for the in-memory collaborators."""

    async def test_lookup_returns_copies(self):
        lookup = SimulatorOrderLookup([make_order("#1001", "149.00")])

        order = await lookup.get_order_by_name("1001")
        order.display_name = "#changed"

        assert (await lookup.get_order_by_name("#1001")) is not None
        assert lookup.calls == [("name", "1001"), ("name", "#1001")]

    async def test_add_order(self):
        lookup = SimulatorOrderLookup()
        lookup.add_order(make_order("#7", "10.00", email="z@x.com"))
        assert len(await lookup.get_orders_by_email("Z@X.COM")) == 1

    async def test_configured_failures(self):
        lookup = SimulatorOrderLookup(config=SimulatorConfig(fail_by_name=True, fail_by_email=True))
        with pytest.raises(OrderLookupError):
            await lookup.get_order_by_name("1")
        with pytest.raises(OrderLookupError):
            await lookup.get_orders_by_email("a@x.com")

    async def test_gateway_records_submissions(self):
        gateway = SimulatorGateway()

        response = await gateway.submit_defense("cb_1", b"evidence")

        assert response["chargeback_id"] == "cb_1"
        assert response["id"].startswith("sim_doc_")
        assert gateway.submissions[0].evidence == b"evidence"

    async def test_gateway_rejection(self):
        gateway = SimulatorGateway(SimulatorConfig(fail_submission=True))
        with pytest.raises(GatewaySubmissionError):
            await gateway.submit_defense("cb_1", b"evidence")
        assert gateway.submissions == []


class TestBuilders:
    def test_lookup_needs_both_credentials(self):
        assert build_order_lookup(Settings(shopify_store_domain="demo.myshopify.com")) is None

    async def test_lookup_built_when_configured(self):
        lookup = build_order_lookup(
            Settings(shopify_store_domain="demo.myshopify.com", shopify_access_token="t")
        )
        assert isinstance(lookup, ShopifyOrderLookup)
        await lookup.aclose()

    async def test_gateway_built_from_api_key(self):
        assert build_gateway(Settings()) is None
        gateway = build_gateway(Settings(pagarme_api_key="sk_test"))
        assert isinstance(gateway, PagarmeGateway)
        await gateway.aclose()
