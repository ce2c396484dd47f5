# nexfy_app/models/__init__.py
# -*- coding: utf-8 -*-
from .user import User
from .product import Product, ProductOffer, OrderBump, Upsell, UpsellPurchase
from .coupon import Coupon
from .transaction import Transaction, Refund
from .entitlement import Entitlement
from .webhook_log import WebhookLog
from .integration import GatewayCredential, SellerWebhook, UtmifyIntegration


__all__ = [
    "User",
    "Product",
    "ProductOffer",
    "OrderBump",
    "Upsell",
    "UpsellPurchase",
    "Coupon",
    "Transaction",
    "Refund",
    "Entitlement",
    "WebhookLog",
    "GatewayCredential",
    "SellerWebhook",
    "UtmifyIntegration",
]
