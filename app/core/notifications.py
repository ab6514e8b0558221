"""Relays Mercado Libre notifications to the operator chat."""

import logging

from app.core import messages
from app.core.commands import encode_answer_intent, encode_shipment_intent
from app.mercadolibre.client import MarketplaceClient, UpstreamApiError
from app.mercadolibre.oauth import TokenLifecycleManager, TokenManagerError
from app.mercadolibre.webhook_models import MarketplaceNotification
from app.telegram.messenger import InlineButton, TelegramMessenger

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Turns marketplace notifications into operator chat messages.

    ``handle`` runs after the webhook has already been acknowledged and never
    raises: failures are logged and the notification is dropped, since the
    operator can recover state later with /checksales and /checkquestions.
    """

    def __init__(
        self,
        token_manager: TokenLifecycleManager,
        marketplace: MarketplaceClient,
        messenger: TelegramMessenger,
        operator_chat_id: str,
    ):
        self._tokens = token_manager
        self._marketplace = marketplace
        self._messenger = messenger
        self._chat_id = operator_chat_id

    async def handle(self, notification: MarketplaceNotification) -> None:
        logger.info(
            "Processing notification topic=%s resource=%s",
            notification.topic,
            notification.resource,
        )

        try:
            await self._tokens.ensure_valid()
        except TokenManagerError as e:
            logger.error(
                "Notification %s %s dropped, no usable credential: %s",
                notification.topic,
                notification.resource,
                e,
            )
            return

        try:
            if notification.is_question:
                await self._relay_question(notification.resource_id)
            elif notification.is_order:
                await self._relay_order(notification.resource_id)
            else:
                await self._send(
                    messages.generic_notification_text(
                        notification.topic, notification.resource
                    )
                )
        except UpstreamApiError as e:
            logger.error(
                "Error resolving %s notification: status=%s body=%s",
                notification.topic,
                e.status_code,
                e.body,
            )
        except TokenManagerError as e:
            logger.error("Credential lost while relaying notification: %s", e)

    async def _relay_question(self, question_id: str) -> None:
        question = await self._marketplace.get_question(question_id)

        item_title = question.item_id
        try:
            item_title = (await self._marketplace.get_item(question.item_id)).title
        except UpstreamApiError as e:
            logger.warning("Item %s lookup failed: %s", question.item_id, e)

        await self._send(
            messages.question_notification_text(question, item_title),
            [
                InlineButton(
                    text="Responder pregunta",
                    callback_data=encode_answer_intent(question.id),
                )
            ],
        )

    async def _relay_order(self, order_id: str) -> None:
        order = await self._marketplace.get_order(order_id)

        buttons = []
        if order.shipment_id:
            buttons.append(
                InlineButton(
                    text="Ver envío",
                    callback_data=encode_shipment_intent(order.shipment_id),
                )
            )

        await self._send(messages.order_notification_text(order), buttons)

    async def _send(self, text: str, buttons: list[InlineButton] | None = None) -> None:
        result = await self._messenger.send_message(self._chat_id, text, buttons)
        if not result.success:
            logger.error("Notification was not delivered: %s", result.error)
