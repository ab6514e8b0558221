"""Operator command dispatcher - conversational state machine."""

import asyncio
import logging
from typing import Optional

from app.core import messages
from app.core.commands import (
    PUBLIC_COMMANDS,
    CheckQuestions,
    CheckSales,
    CheckShipment,
    Command,
    Help,
    MalformedCommand,
    Menu,
    ProductInfo,
    Respond,
    SetStock,
    Start,
    Status,
    Unknown,
    is_command,
    parse_button,
    parse_command,
)
from app.mercadolibre.client import MarketplaceClient, UpstreamApiError
from app.mercadolibre.oauth import TokenLifecycleManager, TokenManagerError
from app.models.domain import (
    ButtonPress,
    ChatSession,
    InboundChatEvent,
    SessionMode,
    TextMessage,
)
from app.storage.base import ChatSessionStore
from app.telegram.messenger import TelegramMessenger

logger = logging.getLogger(__name__)

PRODUCT_PAGE_SIZE = 50
RECENT_SALES_LIMIT = 5
PENDING_QUESTIONS_LIMIT = 5


class CommandDispatcher:
    """Routes operator chat events to marketplace operations.

    Each chat is either idle or awaiting the free-text answer to a question.
    Every event is handled while holding the chat's session lock, so
    deliveries for the same chat never interleave.
    """

    def __init__(
        self,
        sessions: ChatSessionStore,
        token_manager: TokenLifecycleManager,
        marketplace: MarketplaceClient,
        messenger: TelegramMessenger,
        auth_page_url: str,
        operator_chat_id: Optional[str] = None,
        command_timeout: float = 45.0,
    ):
        """Initialize CommandDispatcher.

        Args:
            sessions: Per-chat session store
            token_manager: Credential lifecycle manager
            marketplace: Mercado Libre API client
            messenger: Telegram messenger for replies
            auth_page_url: Page where the operator (re)links the account
            operator_chat_id: If set, events from other chats are ignored
            command_timeout: Upper bound for one command's upstream calls
        """
        self._sessions = sessions
        self._tokens = token_manager
        self._marketplace = marketplace
        self._messenger = messenger
        self._auth_page_url = auth_page_url
        self._operator_chat_id = operator_chat_id
        self._command_timeout = command_timeout

    async def dispatch(self, event: InboundChatEvent) -> None:
        """Handle one inbound chat event through to its reply."""
        if isinstance(event, ButtonPress):
            # Clear the client's loading state before doing any work
            await self._messenger.answer_callback_query(event.callback_id)

        if self._operator_chat_id and event.chat_id != self._operator_chat_id:
            logger.warning("Ignoring event from unauthorized chat %s", event.chat_id)
            return

        async with self._sessions.locked(event.chat_id):
            if isinstance(event, ButtonPress):
                await self._handle_button(event)
            else:
                await self._handle_text(event)

    async def _handle_button(self, event: ButtonPress) -> None:
        logger.info("Button [%s] pressed in chat %s", event.data, event.chat_id)

        command = parse_button(event.data)
        if command is None:
            await self._reply(event.chat_id, messages.unknown_button_text())
        elif isinstance(command, Respond):
            await self._start_answer_flow(event.chat_id, command.question_id)
        else:
            await self._run_private(event.chat_id, command)

    async def _handle_text(self, event: TextMessage) -> None:
        chat_id = event.chat_id
        logger.info("Command [%s] received from chat %s", event.text, chat_id)

        session = await self._sessions.get(chat_id)
        if session.mode == SessionMode.AWAITING_ANSWER and not is_command(event.text):
            await self._submit_answer(chat_id, session.pending_question_id, event.text)
            return

        try:
            command = parse_command(event.text)
        except MalformedCommand as e:
            logger.info("Malformed command from chat %s: %s", chat_id, e)
            await self._reply(chat_id, messages.usage_text(e.usage))
            return

        if isinstance(command, Unknown):
            await self._reply(chat_id, messages.not_recognized_text())
        elif isinstance(command, PUBLIC_COMMANDS):
            await self._run_public(chat_id, command)
        else:
            await self._run_private(chat_id, command)

    async def _run_public(self, chat_id: str, command: Command) -> None:
        if isinstance(command, (Start, Menu, Help)):
            await self._reply(chat_id, messages.menu_text())
        elif isinstance(command, Status):
            linked = await self._tokens.current() is not None
            await self._reply(chat_id, messages.status_text(linked))

    async def _run_private(self, chat_id: str, command: Command) -> None:
        """Run a command that needs marketplace access.

        The credential check and the command share one ``command_timeout``
        budget, so a hanging token endpoint still ends in a reply.
        """
        try:
            reply = await asyncio.wait_for(
                self._execute(chat_id, command),
                timeout=self._command_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Command %s timed out after %.0fs", command, self._command_timeout)
            reply = messages.generic_error_text()
        except UpstreamApiError as e:
            logger.error(
                "Command %s failed upstream: status=%s body=%s",
                command,
                e.status_code,
                e.body,
            )
            reply = messages.generic_error_text()
        except TokenManagerError as e:
            logger.warning("Cannot run %s for chat %s: %s", command, chat_id, e)
            reply = messages.auth_required_text(self._auth_page_url)

        await self._reply(chat_id, reply)

    async def _execute(self, chat_id: str, command: Command) -> str:
        """Run a private command and return the reply text."""
        credential = await self._tokens.ensure_valid()
        account_id = credential.account_id

        if isinstance(command, ProductInfo):
            item_ids = await self._marketplace.search_items(
                account_id, limit=PRODUCT_PAGE_SIZE
            )
            items = await self._marketplace.get_items(item_ids) if item_ids else []
            return messages.products_text(items)

        if isinstance(command, CheckSales):
            orders = await self._marketplace.search_orders(
                account_id, limit=RECENT_SALES_LIMIT
            )
            return messages.sales_text(orders)

        if isinstance(command, CheckQuestions):
            questions = await self._marketplace.search_questions(
                account_id, limit=PENDING_QUESTIONS_LIMIT
            )
            return messages.questions_text(questions)

        if isinstance(command, Respond):
            await self._sessions.set(
                chat_id, ChatSession.awaiting_answer(command.question_id)
            )
            return messages.answer_prompt_text(command.question_id)

        if isinstance(command, SetStock):
            await self._marketplace.update_stock(command.item_id, command.quantity)
            return messages.stock_updated_text(command.item_id, command.quantity)

        if isinstance(command, CheckShipment):
            shipment = await self._marketplace.get_shipment(command.shipment_id)
            return messages.shipment_text(shipment)

        raise ValueError(f"Unhandled command: {command!r}")

    async def _start_answer_flow(self, chat_id: str, question_id: str) -> None:
        # A newer flow replaces any pending one
        await self._sessions.set(chat_id, ChatSession.awaiting_answer(question_id))
        await self._reply(chat_id, messages.answer_prompt_text(question_id))

    async def _submit_answer(self, chat_id: str, question_id: str, text: str) -> None:
        """Publish the operator's free text as the answer; always ends the flow."""
        try:
            await asyncio.wait_for(
                self._marketplace.answer_question(question_id, text),
                timeout=self._command_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Answering question %s timed out", question_id)
            reply = messages.answer_failed_text("tiempo de espera agotado")
        except UpstreamApiError as e:
            logger.error(
                "Answering question %s failed: status=%s body=%s",
                question_id,
                e.status_code,
                e.body,
            )
            reply = messages.answer_failed_text(str(e))
        except TokenManagerError as e:
            logger.warning("Cannot answer question %s: %s", question_id, e)
            reply = messages.auth_required_text(self._auth_page_url)
        else:
            logger.info("Question %s answered from chat %s", question_id, chat_id)
            reply = messages.answer_sent_text()
        finally:
            await self._sessions.clear(chat_id)

        await self._reply(chat_id, reply)

    async def _reply(self, chat_id: str, text: str) -> None:
        result = await self._messenger.send_message(chat_id, text)
        if not result.success:
            logger.error("Reply to chat %s was not delivered: %s", chat_id, result.error)
