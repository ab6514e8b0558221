# Mercado Libre API integration module

from app.mercadolibre.oauth import (
    AuthRequired,
    ConfigurationError,
    RefreshFailed,
    TokenLifecycleManager,
    TokenManagerError,
)
from app.mercadolibre.client import (
    Item,
    MarketplaceClient,
    Order,
    Question,
    Shipment,
    UpstreamApiError,
)
from app.mercadolibre.webhook_models import MarketplaceNotification

__all__ = [
    "AuthRequired",
    "ConfigurationError",
    "RefreshFailed",
    "TokenLifecycleManager",
    "TokenManagerError",
    "Item",
    "MarketplaceClient",
    "Order",
    "Question",
    "Shipment",
    "UpstreamApiError",
    "MarketplaceNotification",
]
