# nexfy_app/gateways/__init__.py
"""
Registro dos provedores de pagamento.

``get_gateway(nome, credenciais)`` sempre devolve uma instância nova, presa às
credenciais do vendedor. Novo provedor = nova classe + uma entrada em GATEWAYS.
"""
from __future__ import annotations

from typing import Any, Mapping

from .base import (
    CardData, Customer, GatewayAdapter, GatewayConfigError, GatewayCredentials,
    GatewayError, PaymentInput, PaymentResult, PaymentStatus, RefundResult,
    UnsupportedGatewayError,
)
from .beehive import BeehiveAdapter
from .efi import EfiAdapter
from .hypercash import HypercashAdapter
from .mercadopago import MercadoPagoAdapter
from .pushinpay import PushinPayAdapter
from .stripe_gateway import StripeAdapter

GATEWAYS: dict[str, type[GatewayAdapter]] = {
    "mercadopago": MercadoPagoAdapter,
    "efi": EfiAdapter,
    "pushinpay": PushinPayAdapter,
    "beehive": BeehiveAdapter,
    "hypercash": HypercashAdapter,
    "stripe": StripeAdapter,
}


def available_gateways() -> list[str]:
    return list(GATEWAYS)


def gateway_class(name: str) -> type[GatewayAdapter]:
    try:
        return GATEWAYS[name]
    except KeyError:
        raise UnsupportedGatewayError(f'Gateway "{name}" nao suportado') from None


def get_gateway(name: str, credentials: GatewayCredentials | Mapping[str, Any] | None) -> GatewayAdapter:
    cls = gateway_class(name)
    if not isinstance(credentials, GatewayCredentials):
        credentials = GatewayCredentials.from_mapping(credentials)
    return cls(credentials)


__all__ = [
    "GATEWAYS",
    "available_gateways",
    "gateway_class",
    "get_gateway",
    "CardData",
    "Customer",
    "GatewayAdapter",
    "GatewayConfigError",
    "GatewayCredentials",
    "GatewayError",
    "PaymentInput",
    "PaymentResult",
    "PaymentStatus",
    "RefundResult",
    "UnsupportedGatewayError",
]
