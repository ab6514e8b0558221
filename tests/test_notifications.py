"""Tests for relaying Mercado Libre notifications to the operator chat."""

from unittest.mock import AsyncMock

import pytest

from app.core import messages
from app.core.notifications import NotificationRouter
from app.mercadolibre.client import (
    Item,
    MarketplaceClient,
    Order,
    Question,
    UpstreamApiError,
)
from app.mercadolibre.oauth import AuthRequired, TokenLifecycleManager
from app.mercadolibre.webhook_models import MarketplaceNotification
from app.models.domain import Credential
from app.telegram.messenger import InlineButton, SendResult, TelegramMessenger

OPERATOR_CHAT = "42"


@pytest.fixture
def mock_tokens():
    tokens = AsyncMock(spec=TokenLifecycleManager)
    tokens.ensure_valid.return_value = Credential(
        access_token="APP_USR-access-1",
        refresh_token="TG-refresh-1",
        expires_at=1_760_021_600_000,
        account_id="123456789",
    )
    return tokens


@pytest.fixture
def mock_marketplace():
    return AsyncMock(spec=MarketplaceClient)


@pytest.fixture
def mock_messenger():
    messenger = AsyncMock(spec=TelegramMessenger)
    messenger.send_message.return_value = SendResult(success=True, message_id=1)
    return messenger


@pytest.fixture
def router(mock_tokens, mock_marketplace, mock_messenger):
    return NotificationRouter(
        token_manager=mock_tokens,
        marketplace=mock_marketplace,
        messenger=mock_messenger,
        operator_chat_id=OPERATOR_CHAT,
    )


def notification(topic: str, resource: str) -> MarketplaceNotification:
    return MarketplaceNotification(topic=topic, resource=resource)


class TestNotificationRouter:
    """Tests for NotificationRouter.handle."""

    async def test_question_notification(
        self,
        router: NotificationRouter,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
    ):
        question = Question(id="5036111111", item_id="MLA1", text="¿Tiene stock?")
        mock_marketplace.get_question.return_value = question
        mock_marketplace.get_item.return_value = Item(id="MLA1", title="Crema facial")

        await router.handle(notification("questions", "/questions/5036111111"))

        mock_marketplace.get_question.assert_called_once_with("5036111111")
        mock_messenger.send_message.assert_called_once_with(
            OPERATOR_CHAT,
            messages.question_notification_text(question, "Crema facial"),
            [InlineButton(text="Responder pregunta", callback_data="answer_5036111111")],
        )

    async def test_question_falls_back_to_item_id(
        self,
        router: NotificationRouter,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
    ):
        question = Question(id="555", item_id="MLA1", text="¿Tiene stock?")
        mock_marketplace.get_question.return_value = question
        mock_marketplace.get_item.side_effect = UpstreamApiError("HTTP error 404", 404, "")

        await router.handle(notification("questions", "/questions/555"))

        sent_text = mock_messenger.send_message.call_args.args[1]
        assert sent_text == messages.question_notification_text(question, "MLA1")

    async def test_order_notification_with_shipment(
        self,
        router: NotificationRouter,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
    ):
        order = Order.model_validate(
            {
                "id": 777,
                "status": "paid",
                "total_amount": 4500.0,
                "currency_id": "ARS",
                "buyer": {"nickname": "COMPRADOR1"},
                "shipping": {"id": 4321},
            }
        )
        mock_marketplace.get_order.return_value = order

        await router.handle(notification("orders_v2", "/orders/777"))

        mock_marketplace.get_order.assert_called_once_with("777")
        chat_id, sent_text, buttons = mock_messenger.send_message.call_args.args
        assert chat_id == OPERATOR_CHAT
        assert sent_text == messages.order_notification_text(order)
        assert "COMPRADOR1" in sent_text
        assert "/checkshipment 4321" in sent_text
        assert buttons == [InlineButton(text="Ver envío", callback_data="shipment_4321")]

    async def test_order_notification_without_shipment(
        self,
        router: NotificationRouter,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
    ):
        order = Order(id="778", status="paid", total_amount=10.0, currency_id="ARS")
        mock_marketplace.get_order.return_value = order

        await router.handle(notification("orders_v2", "/orders/778"))

        _, sent_text, buttons = mock_messenger.send_message.call_args.args
        assert "checkshipment" not in sent_text
        assert buttons == []

    async def test_order_without_buyer_or_shipping(
        self,
        router: NotificationRouter,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
    ):
        order = Order.model_validate(
            {
                "id": 779,
                "status": "paid",
                "total_amount": 10.0,
                "currency_id": "ARS",
                "buyer": None,
                "shipping": None,
            }
        )
        mock_marketplace.get_order.return_value = order

        await router.handle(notification("orders_v2", "/orders/779"))

        _, sent_text, buttons = mock_messenger.send_message.call_args.args
        assert "*Comprador:* \\-" in sent_text
        assert buttons == []

    async def test_unknown_topic_is_surfaced(
        self,
        router: NotificationRouter,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
    ):
        await router.handle(notification("items", "/items/MLA1"))

        assert mock_marketplace.mock_calls == []
        mock_messenger.send_message.assert_called_once_with(
            OPERATOR_CHAT,
            messages.generic_notification_text("items", "/items/MLA1"),
            None,
        )

    async def test_no_credential_drops_notification(
        self,
        router: NotificationRouter,
        mock_tokens: AsyncMock,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
        caplog: pytest.LogCaptureFixture,
    ):
        mock_tokens.ensure_valid.side_effect = AuthRequired("No credential on file")

        await router.handle(notification("orders_v2", "/orders/777"))

        assert mock_marketplace.mock_calls == []
        mock_messenger.send_message.assert_not_called()
        assert "dropped" in caplog.text

    async def test_upstream_error_is_logged_not_raised(
        self,
        router: NotificationRouter,
        mock_marketplace: AsyncMock,
        mock_messenger: AsyncMock,
        caplog: pytest.LogCaptureFixture,
    ):
        mock_marketplace.get_order.side_effect = UpstreamApiError(
            "HTTP error 500", status_code=500, body="boom"
        )

        await router.handle(notification("orders_v2", "/orders/777"))

        mock_messenger.send_message.assert_not_called()
        assert "boom" in caplog.text

    async def test_delivery_failure_is_logged(
        self,
        router: NotificationRouter,
        mock_messenger: AsyncMock,
        caplog: pytest.LogCaptureFixture,
    ):
        mock_messenger.send_message.return_value = SendResult(
            success=False, error="can't parse entities"
        )

        await router.handle(notification("items", "/items/MLA1"))

        assert "can't parse entities" in caplog.text


class TestMarketplaceNotification:
    """Tests for the notification payload model."""

    def test_parses_full_payload(self):
        payload = MarketplaceNotification.model_validate(
            {
                "_id": "f9f08571",
                "resource": "/questions/5036111111",
                "user_id": 123456789,
                "topic": "questions",
                "application_id": 2069392825111111,
                "attempts": 1,
                "sent": "2024-01-01T12:00:00.000Z",
                "received": "2024-01-01T12:00:00.000Z",
            }
        )

        assert payload.resource_id == "5036111111"
        assert payload.is_question
        assert payload.notification_id == "f9f08571"

    def test_resource_id_ignores_trailing_slash(self):
        assert notification("orders_v2", "/orders/777/").resource_id == "777"
