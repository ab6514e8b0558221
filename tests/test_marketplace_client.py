"""Tests for the Mercado Libre API client."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.mercadolibre.client import MarketplaceClient, UpstreamApiError
from app.mercadolibre.oauth import AuthRequired, TokenLifecycleManager
from app.models.domain import Credential


def credential(token: str) -> Credential:
    return Credential(
        access_token=token,
        refresh_token="TG-refresh-1",
        expires_at=1_760_021_600_000,
        account_id="123456789",
    )


@pytest.fixture
def mock_tokens():
    tokens = AsyncMock(spec=TokenLifecycleManager)
    tokens.ensure_valid.return_value = credential("APP_USR-access-1")
    tokens.mark_stale = MagicMock()
    return tokens


class FakeApi:
    """Records requests and answers from a route table."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {request.url.path}"
        handler = self.routes[key]
        return handler(request) if callable(handler) else handler


def make_client(tokens, api: FakeApi) -> MarketplaceClient:
    return MarketplaceClient(token_manager=tokens, transport=httpx.MockTransport(api))


class TestMarketplaceClient:
    """Tests for MarketplaceClient class."""

    async def test_requests_carry_bearer_token(self, mock_tokens):
        api = FakeApi(
            {
                "GET /questions/555": httpx.Response(
                    200, json={"id": 555, "item_id": "MLA1", "text": "¿Stock?", "status": "UNANSWERED"}
                )
            }
        )
        client = make_client(mock_tokens, api)

        question = await client.get_question("555")

        assert question.id == "555"
        assert api.requests[0].headers["Authorization"] == "Bearer APP_USR-access-1"

    async def test_401_marks_token_stale_and_retries_once(self, mock_tokens):
        mock_tokens.ensure_valid.side_effect = [
            credential("APP_USR-access-1"),
            credential("APP_USR-access-2"),
        ]

        def orders(request: httpx.Request) -> httpx.Response:
            if request.headers["Authorization"].endswith("access-1"):
                return httpx.Response(401, json={"message": "invalid_token"})
            return httpx.Response(
                200,
                json={"id": 777, "status": "paid", "total_amount": 10, "currency_id": "ARS"},
            )

        api = FakeApi({"GET /orders/777": orders})
        client = make_client(mock_tokens, api)

        order = await client.get_order("777")

        assert order.id == "777"
        mock_tokens.mark_stale.assert_called_once_with("APP_USR-access-1")
        assert len(api.requests) == 2

    async def test_error_response_raises_upstream_error(self, mock_tokens):
        api = FakeApi(
            {"GET /shipments/1": httpx.Response(404, json={"message": "not_found"})}
        )
        client = make_client(mock_tokens, api)

        with pytest.raises(UpstreamApiError) as exc_info:
            await client.get_shipment("1")

        assert exc_info.value.status_code == 404
        assert "not_found" in exc_info.value.body

    async def test_missing_credential_propagates(self, mock_tokens):
        mock_tokens.ensure_valid.side_effect = AuthRequired("No credential")
        api = FakeApi({})
        client = make_client(mock_tokens, api)

        with pytest.raises(AuthRequired):
            await client.search_orders("123456789")
        assert api.requests == []

    async def test_get_items_chunks_multiget(self, mock_tokens):
        def multiget(request: httpx.Request) -> httpx.Response:
            ids = request.url.params["ids"].split(",")
            body = [
                {"code": 200, "body": {"id": item_id, "title": f"Item {item_id}"}}
                for item_id in ids
            ]
            return httpx.Response(200, json=body)

        api = FakeApi({"GET /items": multiget})
        client = make_client(mock_tokens, api)
        item_ids = [f"MLA{n}" for n in range(45)]

        items = await client.get_items(item_ids)

        assert [item.id for item in items] == item_ids
        assert [len(r.url.params["ids"].split(",")) for r in api.requests] == [20, 20, 5]

    async def test_get_items_skips_failed_entries(self, mock_tokens):
        api = FakeApi(
            {
                "GET /items": httpx.Response(
                    200,
                    json=[
                        {"code": 200, "body": {"id": "MLA1", "title": "Crema"}},
                        {"code": 404, "body": {"message": "not found"}},
                    ],
                )
            }
        )
        client = make_client(mock_tokens, api)

        items = await client.get_items(["MLA1", "MLA2"])

        assert [item.id for item in items] == ["MLA1"]

    async def test_search_items_uses_account_and_page_size(self, mock_tokens):
        api = FakeApi(
            {
                "GET /users/123456789/items/search": httpx.Response(
                    200, json={"results": ["MLA1", "MLA2"], "paging": {"total": 2}}
                )
            }
        )
        client = make_client(mock_tokens, api)

        ids = await client.search_items("123456789", limit=50)

        assert ids == ["MLA1", "MLA2"]
        assert api.requests[0].url.params["status"] == "active"
        assert api.requests[0].url.params["limit"] == "50"

    async def test_answer_question_posts_answer(self, mock_tokens):
        api = FakeApi({"POST /answers": httpx.Response(200, json={"id": 555})})
        client = make_client(mock_tokens, api)

        await client.answer_question("555", "it ships in 3 days")

        assert json.loads(api.requests[0].content) == {
            "question_id": 555,
            "text": "it ships in 3 days",
        }

    async def test_update_stock_puts_quantity(self, mock_tokens):
        api = FakeApi(
            {
                "PUT /items/MLA1": httpx.Response(
                    200, json={"id": "MLA1", "title": "Crema", "available_quantity": 7}
                )
            }
        )
        client = make_client(mock_tokens, api)

        item = await client.update_stock("MLA1", 7)

        assert item.available_quantity == 7
        assert json.loads(api.requests[0].content) == {"available_quantity": 7}

    async def test_search_orders_sorted_by_date(self, mock_tokens):
        api = FakeApi(
            {
                "GET /orders/search": httpx.Response(
                    200,
                    json={
                        "results": [
                            {"id": 1, "status": "paid", "total_amount": 5, "currency_id": "ARS"}
                        ]
                    },
                )
            }
        )
        client = make_client(mock_tokens, api)

        orders = await client.search_orders("123456789", limit=5)

        assert [order.id for order in orders] == ["1"]
        params = api.requests[0].url.params
        assert params["seller"] == "123456789"
        assert params["sort"] == "date_desc"
        assert params["limit"] == "5"

    async def test_order_with_null_buyer_and_shipping(self, mock_tokens):
        api = FakeApi(
            {
                "GET /orders/777": httpx.Response(
                    200,
                    json={
                        "id": 777,
                        "status": "paid",
                        "total_amount": 10,
                        "currency_id": "ARS",
                        "buyer": None,
                        "shipping": None,
                    },
                )
            }
        )
        client = make_client(mock_tokens, api)

        order = await client.get_order("777")

        assert order.buyer_nickname is None
        assert order.shipment_id is None

    async def test_unexpected_payload_raises_upstream_error(self, mock_tokens):
        api = FakeApi(
            {"GET /orders/777": httpx.Response(200, json={"id": 777, "buyer": "nobody"})}
        )
        client = make_client(mock_tokens, api)

        with pytest.raises(UpstreamApiError) as exc_info:
            await client.get_order("777")

        assert "Order" in str(exc_info.value)
        assert "nobody" in exc_info.value.body
