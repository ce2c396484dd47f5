# nexfy_app/gateways/base.py
# -*- coding: utf-8 -*-
"""
Tipos e classe base compartilhados por todos os adaptadores de gateway.

Cada provedor traduz o contrato abaixo para a sua API REST:
``create_payment``, ``get_status``, ``refund`` e ``verify_webhook``.
Credencial faltando falha já na construção com ``GatewayConfigError``, e o
checkout mostra ao comprador a mensagem do provedor antes de qualquer
chamada de rede.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_DESCRIPTION = "Pagamento NexFy"


class GatewayError(Exception):
    """Falha de transporte ou resposta inesperada do provedor."""
    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class GatewayConfigError(GatewayError):
    """Credenciais ausentes/invalidas para o provedor."""


class UnsupportedGatewayError(GatewayError):
    pass


@dataclass
class GatewayCredentials:
    access_token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    certificate_path: str | None = None
    pix_key: str | None = None
    api_key: str | None = None
    secret_key: str | None = None
    public_key: str | None = None
    webhook_secret: str | None = None
    sandbox: bool = False
    timeout: float = DEFAULT_TIMEOUT
    notification_url: str | None = None

    _ALIASES = {
        "accessToken": "access_token",
        "clientId": "client_id",
        "clientSecret": "client_secret",
        "certificatePath": "certificate_path",
        "pixKey": "pix_key",
        "apiKey": "api_key",
        "secretKey": "secret_key",
        "publicKey": "public_key",
        "webhookSecret": "webhook_secret",
        "notificationUrl": "notification_url",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "GatewayCredentials":
        """Aceita chaves em camelCase (formato salvo pelo painel) ou snake_case."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = cls._ALIASES.get(key, key)
            if name in known and value not in (None, ""):
                kwargs[name] = value
        return cls(**kwargs)


@dataclass
class Customer:
    name: str
    email: str
    tax_id: str = ""
    phone: str | None = None

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else ""

    @property
    def last_name(self) -> str:
        return " ".join(self.name.split(" ")[1:]) if self.name else ""


@dataclass
class CardData:
    number: str
    holder_name: str
    exp_month: str
    exp_year: str
    cvv: str

    @property
    def clean_number(self) -> str:
        return re.sub(r"\s", "", self.number)

    @property
    def last_four(self) -> str:
        return self.clean_number[-4:]


@dataclass
class PaymentInput:
    amount: Decimal
    payment_method: str  # pix | credit_card | boleto
    customer: Customer
    currency: str = "BRL"
    card: CardData | None = None
    card_token: str | None = None
    installments: int = 1
    description: str | None = None
    external_ref: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentResult:
    success: bool
    gateway_payment_id: str
    status: str  # pending | approved | refused
    pix_code: str | None = None
    pix_qr_code: str | None = None
    boleto_url: str | None = None
    boleto_barcode: str | None = None
    card_last_four: str | None = None
    card_brand: str | None = None
    saved_customer_id: str | None = None
    saved_payment_method_id: str | None = None
    error: str | None = None
    # status bruto do provedor (ex.: requires_action no Stripe)
    provider_status: str | None = None
    raw: Any = None

    @classmethod
    def failed(cls, error: str, raw: Any = None) -> "PaymentResult":
        return cls(success=False, gateway_payment_id="", status="refused", error=error, raw=raw)


@dataclass
class PaymentStatus:
    gateway_payment_id: str
    status: str  # um dos sete estados de Transaction
    paid_at: datetime | None = None
    saved_customer_id: str | None = None
    saved_payment_method_id: str | None = None
    raw: Any = None


@dataclass
class RefundResult:
    success: bool
    refund_id: str | None = None
    error: str | None = None
    raw: Any = None


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------
def only_digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def to_cents(amount: Decimal | float | int) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def money_str(amount: Decimal | float | int) -> str:
    return str(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# moedas sem casas decimais (valor já está na menor unidade)
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})


def to_minor_units(amount: Decimal | float | int, currency: str = "BRL") -> int:
    if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES:
        return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return to_cents(amount)


def hmac_sha256_hex(secret: str, message: str | bytes) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def constant_time_equals(expected: str, received: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), (received or "").strip().encode("utf-8"))


def parse_signature_header(signature: str) -> dict[str, str]:
    """``t=123,v1=abc`` / ``ts=123,v1=abc`` -> {"t": "123", "v1": "abc"}"""
    parts: dict[str, str] = {}
    for chunk in (signature or "").split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep and key and key not in parts:
            parts[key] = value
    return parts


def parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        # normaliza para UTC ingênuo, como as colunas DateTime do projeto
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class GatewayAdapter(ABC):
    """Contrato uniforme dos provedores de pagamento."""

    name: str = ""
    hint: str = "Gateway de pagamento nao configurado. Contate o vendedor."
    supported_methods: tuple[str, ...] = ("pix", "credit_card", "boleto")
    accepts_card_token: bool = True
    # cartão em claro só vai para provedores que o exigem/aceitam
    accepts_card_data: bool = True
    requires_card_data: bool = False
    # provedores que assinam o corpo (verificação antes de responder 200)
    signs_payloads: bool = False
    # chave de config com o segredo da plataforma, conferido já na entrada do webhook
    platform_secret_config: str | None = None
    status_map: dict[str, str] = {}

    def __init__(self, credentials: GatewayCredentials):
        self.credentials = credentials
        self.timeout = credentials.timeout or DEFAULT_TIMEOUT

    # -- contrato ---------------------------------------------------------
    @abstractmethod
    def create_payment(self, data: PaymentInput) -> PaymentResult:
        """Cria a cobrança remota e devolve o resultado normalizado."""

    @abstractmethod
    def get_status(self, payment_id: str) -> PaymentStatus:
        """Consulta somente-leitura do status oficial no provedor."""

    @abstractmethod
    def refund(self, payment_id: str, amount: Decimal | None = None) -> RefundResult:
        """Estorno total (amount=None) ou parcial."""

    @abstractmethod
    def verify_webhook(self, payload: bytes | str, signature: str,
                       headers: Mapping[str, str] | None = None) -> bool:
        """Confere se a notificação foi produzida pelo provedor."""

    # -- comuns ------------------------------------------------------------
    def map_status(self, provider_status: Any) -> str:
        # desconhecido => pending, nunca approved
        return self.status_map.get(str(provider_status or "").strip(), "pending")

    @staticmethod
    def collapse(status: str) -> str:
        """Reduz os sete estados ao vocabulário de criação (pending/approved/refused)."""
        if status == "approved":
            return "approved"
        if status in ("refused", "cancelled", "expired"):
            return "refused"
        return "pending"

    def check_input(self, data: PaymentInput) -> PaymentResult | None:
        """Rejeita localmente o que o provedor não suporta, sem chamada de rede."""
        if data.payment_method not in self.supported_methods:
            labels = {"pix": "PIX", "credit_card": "cartao de credito", "boleto": "boleto"}
            accepted = ", ".join(labels[m] for m in self.supported_methods)
            return PaymentResult.failed(f"{self.display_name} suporta apenas {accepted}")
        if data.payment_method == "credit_card":
            if data.card is None and not data.card_token:
                return PaymentResult.failed("Informe os dados do cartao ou o token")
            if data.card is None and (self.requires_card_data or not self.accepts_card_token):
                return PaymentResult.failed(f"{self.display_name} requer dados completos do cartao")
            if not data.card_token and not self.accepts_card_data:
                return PaymentResult.failed(f"{self.display_name} requer o token do cartao")
        return None

    @property
    def display_name(self) -> str:
        return type(self).__name__.replace("Adapter", "")

    def _request(self, method: str, url: str, *, expect_json: bool = True, **kwargs) -> Any:
        kwargs.setdefault("timeout", self.timeout)
        try:
            res = requests.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.warning("%s request failed: %s %s (%s)", self.name, method, url, e)
            raise GatewayError(f"{self.display_name}: falha de comunicacao com o provedor") from e
        if not expect_json:
            return res
        try:
            return res.json()
        except ValueError as e:
            raise GatewayError(
                f"{self.display_name}: resposta invalida do provedor (HTTP {res.status_code})",
                {"status_code": res.status_code},
            ) from e

    def _hmac_matches(self, secret: str | None, payload: bytes | str, signature: str) -> bool:
        if not secret or not signature:
            return False
        return constant_time_equals(hmac_sha256_hex(secret, payload), signature)
