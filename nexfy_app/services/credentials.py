# nexfy_app/services/credentials.py
from __future__ import annotations

from flask import current_app

from .. import repository
from ..gateways import GatewayAdapter, GatewayCredentials, get_gateway


def gateway_name_for(product) -> str:
    return product.gateway or current_app.config.get("DEFAULT_GATEWAY", "mercadopago")


def credentials_for(seller_id: int, provider: str) -> GatewayCredentials:
    """
    Credenciais do vendedor para o provedor. Para Stripe, o que faltar vem
    das chaves da plataforma (STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET).
    """
    record = repository.get_gateway_credential(seller_id, provider)
    creds = GatewayCredentials.from_mapping(record.credentials if record else {})
    if record:
        creds.sandbox = bool(record.sandbox)

    cfg = current_app.config
    if provider == "stripe":
        creds.secret_key = creds.secret_key or cfg.get("STRIPE_SECRET_KEY") or None
        creds.webhook_secret = creds.webhook_secret or cfg.get("STRIPE_WEBHOOK_SECRET") or None
    creds.timeout = float(cfg.get("GATEWAY_TIMEOUT", 15))
    app_url = (cfg.get("APP_URL") or "").rstrip("/")
    if app_url and not creds.notification_url:
        creds.notification_url = f"{app_url}/webhooks/{provider}"
    return creds


def adapter_for(product, provider: str | None = None) -> GatewayAdapter:
    """Pode levantar GatewayConfigError / UnsupportedGatewayError."""
    provider = provider or gateway_name_for(product)
    return get_gateway(provider, credentials_for(product.user_id, provider))
