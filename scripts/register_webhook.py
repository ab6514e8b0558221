#!/usr/bin/env python3
"""Script to register the Telegram webhook for receiving operator commands.

Usage:
    python scripts/register_webhook.py

The script reads configuration from .env file and registers
<APP_BASE_URL>/telegram-webhook with the Telegram Bot API. The Mercado Libre
notification URL (<APP_BASE_URL>/webhook) is configured in the Mercado Libre
developers panel.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import get_settings
from app.telegram.messenger import MessengerDeliveryError, TelegramMessenger


async def register_webhook() -> bool:
    """Register webhook with the Telegram Bot API.

    Returns:
        True if registration successful, False otherwise
    """
    try:
        settings = get_settings()
    except Exception as e:
        print(f"❌ Error al cargar la configuración: {e}")
        print("\nVerificá que el archivo .env exista y contenga las variables:")
        print("  - TELEGRAM_BOT_TOKEN")
        print("  - TELEGRAM_CHAT_ID")
        print("  - APP_BASE_URL")
        return False

    base_url = settings.app_base_url.rstrip("/")
    webhook_url = f"{base_url}/telegram-webhook"

    print("=" * 60)
    print("🔗 Registro del webhook de Telegram")
    print("=" * 60)
    print(f"\n📍 Webhook URL: {webhook_url}")
    print(f"🔐 Secret token: {'sí' if settings.telegram_webhook_secret else 'no'}")

    messenger = TelegramMessenger(bot_token=settings.telegram_bot_token)

    try:
        await messenger.set_webhook(
            webhook_url, secret_token=settings.telegram_webhook_secret
        )
    except MessengerDeliveryError as e:
        print(f"\n❌ Error al registrar el webhook: {e}")
        return False

    print("\n✅ Webhook registrado correctamente")
    print(f"ℹ️  Notificaciones de Mercado Libre: configurá {base_url}/webhook")
    print(f"ℹ️  Redirect URI de OAuth: {settings.meli_redirect_uri}")
    return True


def main() -> None:
    """Main entry point."""
    success = asyncio.run(register_webhook())
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
