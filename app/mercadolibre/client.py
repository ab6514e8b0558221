"""Mercado Libre REST API client."""

import logging
from datetime import datetime
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from app.mercadolibre.oauth import TokenLifecycleManager

logger = logging.getLogger(__name__)

MELI_API_BASE = "https://api.mercadolibre.com"

# The multiget endpoint accepts at most 20 ids per call
ITEMS_MULTIGET_LIMIT = 20

ITEM_ATTRIBUTES = "id,title,price,currency_id,available_quantity,sold_quantity,permalink"


class _ApiModel(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)


class Item(_ApiModel):
    """Listing (publicación) of the seller."""

    id: str
    title: str
    price: Optional[float] = None
    currency_id: Optional[str] = None
    available_quantity: Optional[int] = None
    sold_quantity: Optional[int] = None
    permalink: Optional[str] = None


class Buyer(_ApiModel):
    id: Optional[str] = None
    nickname: Optional[str] = None


class OrderShipping(_ApiModel):
    id: Optional[str] = None


class Order(_ApiModel):
    """Sale of one or more items."""

    id: str
    status: str
    total_amount: float
    currency_id: str
    date_created: Optional[datetime] = None
    buyer: Optional[Buyer] = None
    shipping: Optional[OrderShipping] = None

    @property
    def buyer_nickname(self) -> Optional[str]:
        return self.buyer.nickname if self.buyer else None

    @property
    def shipment_id(self) -> Optional[str]:
        return self.shipping.id if self.shipping else None


class Question(_ApiModel):
    """Question asked by a buyer on a listing."""

    id: str
    item_id: str
    text: str
    status: Optional[str] = None
    date_created: Optional[datetime] = None


class Shipment(_ApiModel):
    """Shipment tracking information."""

    id: str
    status: str
    substatus: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_method: Optional[str] = None
    order_id: Optional[str] = None


class UpstreamApiError(Exception):
    """Non-success response (or no response) from the Mercado Libre API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: type[ModelT], data: Any) -> ModelT:
    """Validate an API payload, reporting a shape mismatch as an upstream error."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error("Unexpected %s payload from Mercado Libre: %s", model.__name__, e)
        raise UpstreamApiError(
            f"Unexpected {model.__name__} payload", body=str(data)
        ) from e


class MarketplaceClient:
    """HTTP client for the Mercado Libre API.

    Handles authentication via TokenLifecycleManager and provides typed
    operations for items, orders, questions and shipments.
    """

    def __init__(
        self,
        token_manager: TokenLifecycleManager,
        base_url: str = MELI_API_BASE,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize MarketplaceClient.

        Args:
            token_manager: TokenLifecycleManager for bearer credentials
            base_url: API base URL
            timeout: HTTP timeout per request (seconds)
            transport: Optional httpx transport (used by tests)
        """
        self._token_manager = token_manager
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[dict] = None,
        params: Optional[dict] = None,
        retry_on_401: bool = True,
    ) -> httpx.Response:
        """Make an authenticated request to the Mercado Libre API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            json_data: JSON body for POST/PUT requests
            params: Query parameters
            retry_on_401: Whether to retry on 401 (token refresh)

        Returns:
            httpx.Response object

        Raises:
            AuthRequired, RefreshFailed: If no usable credential is available
            UpstreamApiError: On request failure
        """
        credential = await self._token_manager.ensure_valid()
        headers = {"Authorization": f"Bearer {credential.access_token}"}

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.request(
                    method,
                    f"{self._base_url}{endpoint}",
                    headers=headers,
                    json=json_data,
                    params=params,
                )
            except httpx.TimeoutException as e:
                raise UpstreamApiError(f"Request timed out: {e}")
            except httpx.RequestError as e:
                raise UpstreamApiError(f"Network error: {e}")

        if response.status_code == 401 and retry_on_401:
            logger.warning("Got 401, refreshing token and retrying")
            self._token_manager.mark_stale(credential.access_token)
            return await self._make_request(
                method, endpoint, json_data, params, retry_on_401=False
            )

        if response.is_error:
            logger.error(
                "Mercado Libre API error on %s %s: %s - %s",
                method,
                endpoint,
                response.status_code,
                response.text,
            )
            raise UpstreamApiError(
                f"HTTP error {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        return response

    async def search_items(
        self, account_id: str, status: str = "active", limit: int = 50
    ) -> list[str]:
        """Search the seller's listings.

        GET /users/{account_id}/items/search

        Returns:
            List of item ids
        """
        response = await self._make_request(
            "GET",
            f"/users/{account_id}/items/search",
            params={"status": status, "limit": limit},
        )
        return [str(item_id) for item_id in response.json().get("results", [])]

    async def get_items(self, item_ids: list[str]) -> list[Item]:
        """Fetch item details in bulk.

        GET /items?ids=...

        Entries the API reports as failed (non-200 code) are skipped.
        """
        items: list[Item] = []
        for start in range(0, len(item_ids), ITEMS_MULTIGET_LIMIT):
            chunk = item_ids[start : start + ITEMS_MULTIGET_LIMIT]
            response = await self._make_request(
                "GET",
                "/items",
                params={"ids": ",".join(chunk), "attributes": ITEM_ATTRIBUTES},
            )
            for entry in response.json():
                if entry.get("code") != 200:
                    logger.warning("Item lookup failed in multiget: %s", entry)
                    continue
                items.append(_parse(Item, entry["body"]))
        return items

    async def get_item(self, item_id: str) -> Item:
        """GET /items/{item_id}"""
        response = await self._make_request("GET", f"/items/{item_id}")
        return _parse(Item, response.json())

    async def search_orders(self, seller_id: str, limit: int = 5) -> list[Order]:
        """Most recent orders of the seller.

        GET /orders/search?seller=...&sort=date_desc
        """
        response = await self._make_request(
            "GET",
            "/orders/search",
            params={"seller": seller_id, "sort": "date_desc", "limit": limit},
        )
        return [_parse(Order, o) for o in response.json().get("results", [])]

    async def get_order(self, order_id: str) -> Order:
        """GET /orders/{order_id}"""
        response = await self._make_request("GET", f"/orders/{order_id}")
        return _parse(Order, response.json())

    async def search_questions(
        self, seller_id: str, status: str = "UNANSWERED", limit: int = 5
    ) -> list[Question]:
        """Questions received by the seller.

        GET /questions/search?seller_id=...&status=...
        """
        response = await self._make_request(
            "GET",
            "/questions/search",
            params={"seller_id": seller_id, "status": status, "limit": limit},
        )
        return [
            _parse(Question, q) for q in response.json().get("questions", [])
        ]

    async def get_question(self, question_id: str) -> Question:
        """GET /questions/{question_id}"""
        response = await self._make_request("GET", f"/questions/{question_id}")
        return _parse(Question, response.json())

    async def answer_question(self, question_id: str, text: str) -> None:
        """Publish the answer to a question.

        POST /answers
        """
        await self._make_request(
            "POST",
            "/answers",
            json_data={"question_id": int(question_id), "text": text},
        )
        logger.info("Answer published for question %s", question_id)

    async def update_stock(self, item_id: str, quantity: int) -> Item:
        """Set the available quantity of an item.

        PUT /items/{item_id}
        """
        response = await self._make_request(
            "PUT",
            f"/items/{item_id}",
            json_data={"available_quantity": quantity},
        )
        logger.info("Stock of item %s set to %d", item_id, quantity)
        return _parse(Item, response.json())

    async def get_shipment(self, shipment_id: str) -> Shipment:
        """GET /shipments/{shipment_id}"""
        response = await self._make_request("GET", f"/shipments/{shipment_id}")
        return _parse(Shipment, response.json())
