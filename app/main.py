"""FastAPI application for the Mercado Libre ⇄ Telegram operator bot."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import HTMLResponse
from itsdangerous import BadSignature, URLSafeTimedSerializer

from app.config import Settings, get_settings
from app.core import messages
from app.core.dispatcher import CommandDispatcher
from app.core.notifications import NotificationRouter
from app.mercadolibre.client import MarketplaceClient
from app.mercadolibre.oauth import TokenLifecycleManager, TokenManagerError
from app.mercadolibre.webhook_models import MarketplaceNotification
from app.storage.memory import InMemoryChatSessionStore
from app.storage.sqlite import SQLiteCredentialStore
from app.telegram.messenger import TelegramMessenger
from app.telegram.webhook_models import Update

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

OAUTH_STATE_SALT = "meli-oauth-state"
OAUTH_STATE_MAX_AGE = 600  # 10 minutes

TELEGRAM_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@dataclass
class AppState:
    """Application state container for dependency injection."""

    settings: Settings
    token_manager: TokenLifecycleManager
    messenger: TelegramMessenger
    notification_router: NotificationRouter
    dispatcher: CommandDispatcher
    state_serializer: URLSafeTimedSerializer


# Global app state (initialized in lifespan)
app_state: AppState | None = None


def get_app_state() -> AppState:
    """Get application state."""
    if app_state is None:
        raise RuntimeError("Application not initialized")
    return app_state


def build_app_state(settings: Settings) -> AppState:
    """Wire all components from settings.

    - SQLiteCredentialStore + TokenLifecycleManager (Mercado Libre OAuth2)
    - MarketplaceClient (Mercado Libre API)
    - TelegramMessenger (operator chat)
    - InMemoryChatSessionStore + CommandDispatcher (operator commands)
    - NotificationRouter (marketplace notifications)
    """
    credential_store = SQLiteCredentialStore(database_path=settings.database_path)

    token_manager = TokenLifecycleManager(
        store=credential_store,
        client_id=settings.meli_client_id,
        client_secret=settings.meli_client_secret,
        redirect_uri=settings.meli_redirect_uri,
        auth_url=settings.meli_auth_url,
        timeout=settings.request_timeout,
    )
    marketplace = MarketplaceClient(
        token_manager=token_manager,
        timeout=settings.request_timeout,
    )
    messenger = TelegramMessenger(
        bot_token=settings.telegram_bot_token,
        timeout=settings.request_timeout,
    )

    dispatcher = CommandDispatcher(
        sessions=InMemoryChatSessionStore(),
        token_manager=token_manager,
        marketplace=marketplace,
        messenger=messenger,
        auth_page_url=f"{settings.app_base_url.rstrip('/')}/",
        operator_chat_id=settings.telegram_chat_id,
        command_timeout=settings.command_timeout,
    )
    notification_router = NotificationRouter(
        token_manager=token_manager,
        marketplace=marketplace,
        messenger=messenger,
        operator_chat_id=settings.telegram_chat_id,
    )

    return AppState(
        settings=settings,
        token_manager=token_manager,
        messenger=messenger,
        notification_router=notification_router,
        dispatcher=dispatcher,
        state_serializer=URLSafeTimedSerializer(
            settings.secret_key, salt=OAUTH_STATE_SALT
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for initialization and cleanup."""
    global app_state

    logger.info("Starting Mercado Libre operator bot...")

    settings = get_settings()
    logger.info("Configuration loaded")

    app_state = build_app_state(settings)

    linked = await app_state.token_manager.current() is not None
    logger.info("Mercado Libre account linked: %s", linked)

    yield

    logger.info("Shutting down Mercado Libre operator bot...")
    app_state = None
    logger.info("Shutdown complete")


app = FastAPI(
    title="Mercado Libre Operator Bot",
    description="Relays Mercado Libre notifications to Telegram and runs operator commands",
    version="1.0.0",
    lifespan=lifespan,
)


# --- Mercado Libre account linking ---


@app.get("/", response_class=HTMLResponse)
async def auth_page() -> HTMLResponse:
    """Page with the link that starts the Mercado Libre authorization."""
    state = get_app_state()
    oauth_state = state.state_serializer.dumps({"purpose": "link"})
    auth_url = state.token_manager.authorization_url(oauth_state)
    return HTMLResponse(
        "<h2>Vincular Bot con Mercado Libre</h2>"
        f'<p><a href="{auth_url}">Hacé clic acá para autorizar la conexión</a></p>'
    )


@app.get("/callback", response_class=HTMLResponse)
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
) -> HTMLResponse:
    """Exchange the authorization code and confirm in the operator chat."""
    ctx = get_app_state()

    if not code or not state:
        return HTMLResponse("Error: falta el código de autorización.", status_code=400)

    try:
        ctx.state_serializer.loads(state, max_age=OAUTH_STATE_MAX_AGE)
    except BadSignature:
        logger.warning("OAuth callback with invalid or expired state")
        return HTMLResponse("Error: enlace de autorización inválido o vencido.", status_code=400)

    try:
        await ctx.token_manager.authorize(code)
    except TokenManagerError as e:
        logger.error("Authorization code exchange failed: %s", e)
        return HTMLResponse(
            "Error al obtener el token de Mercado Libre.", status_code=502
        )

    await ctx.messenger.send_message(
        ctx.settings.telegram_chat_id, messages.account_linked_text()
    )

    return HTMLResponse(
        "<h3>¡Cuenta vinculada con éxito!</h3>"
        "<p>Ya podés cerrar esta ventana y usar el bot en Telegram.</p>"
    )


# --- Webhooks ---


async def process_notification(
    notification: MarketplaceNotification,
    router: NotificationRouter,
) -> None:
    """Background task to relay a marketplace notification.

    Args:
        notification: The notification to relay.
        router: The notification router instance.
    """
    try:
        await router.handle(notification)
    except Exception as e:
        logger.error(f"Error processing notification: {e}", exc_info=True)


@app.post("/webhook")
async def handle_marketplace_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> Response:
    """Handle incoming Mercado Libre notifications.

    Immediately returns 200 OK and relays the notification in background.
    """
    try:
        body = await request.json()
        notification = MarketplaceNotification.model_validate(body)

        logger.info(
            f"Received notification: topic={notification.topic}, "
            f"resource={notification.resource}"
        )

        state = get_app_state()
        background_tasks.add_task(
            process_notification, notification, state.notification_router
        )

    except RuntimeError as e:
        logger.error(f"Application not initialized: {e}")
    except Exception as e:
        # Invalid payloads are logged but not retried
        logger.error(f"Error parsing notification payload: {e}")

    return Response(status_code=200)


@app.post("/telegram-webhook")
async def handle_telegram_webhook(request: Request) -> Response:
    """Handle incoming Telegram updates.

    The command is run to completion (bounded by the command timeout) before
    answering, so the operator gets the reply in order.
    """
    try:
        state = get_app_state()
    except RuntimeError as e:
        logger.error(f"Application not initialized: {e}")
        return Response(status_code=200)

    secret = state.settings.telegram_webhook_secret
    if secret and request.headers.get(TELEGRAM_SECRET_HEADER) != secret:
        logger.warning("Rejected Telegram webhook call with bad secret token")
        return Response(status_code=401)

    try:
        body = await request.json()
        event = Update.model_validate(body).to_event()
        if event is not None:
            await state.dispatcher.dispatch(event)
    except Exception as e:
        logger.error(f"Error processing Telegram update: {e}", exc_info=True)

    return Response(status_code=200)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Health status information.
    """
    initialized = app_state is not None
    linked = False
    if app_state is not None:
        linked = await app_state.token_manager.current() is not None
    return {
        "status": "healthy" if initialized else "starting",
        "service": "meli-operator-bot",
        "version": "1.0.0",
        "initialized": initialized,
        "account_linked": linked,
    }
