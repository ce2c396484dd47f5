# nexfy_app/gateways/stripe_gateway.py
"""
Stripe via SDK oficial. A chave é passada por chamada (``api_key=``) porque
cada vendedor pode ter a sua; nunca alteramos ``stripe.api_key`` global.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

import stripe

from .base import (
    DEFAULT_DESCRIPTION, GatewayAdapter, GatewayConfigError, GatewayCredentials,
    GatewayError, PaymentInput, PaymentResult, PaymentStatus, RefundResult,
    only_digits, to_minor_units,
)

DEFAULT_TOLERANCE = 600

# código de recusa -> mensagem para o comprador
DECLINE_MESSAGES = {
    "card_not_supported": "Seu banco nao permite este tipo de transacao com este cartao.",
    "insufficient_funds": "Seu cartao nao possui saldo suficiente para esta compra.",
    "card_declined": "Seu banco recusou a transacao.",
    "expired_card": "A validade do seu cartao expirou.",
    "incorrect_cvc": "O codigo de seguranca (CVC) esta incorreto.",
    "processing_error": "Ocorreu um erro ao processar o pagamento.",
    "do_not_honor": "Seu banco nao autorizou esta transacao.",
    "invalid_number": "O numero do cartao esta incorreto.",
    "invalid_expiry_month": "O mes de validade esta incorreto.",
    "invalid_expiry_year": "O ano de validade esta incorreto.",
    "authentication_required": "Seu banco requer autenticacao adicional (3D Secure).",
    "generic_decline": "O pagamento nao foi autorizado.",
}


def decline_message(code: str | None) -> str:
    return DECLINE_MESSAGES.get(code or "", DECLINE_MESSAGES["generic_decline"])


def _get(obj: Any, *path: str) -> Any:
    """Navega em StripeObject/dict sem estourar em chaves ausentes."""
    for key in path:
        if obj is None:
            return None
        if isinstance(obj, dict):
            obj = obj.get(key)
        else:
            obj = getattr(obj, key, None)
    return obj


def verify_stripe_signature(payload: bytes | str, header: str, secret: str,
                            tolerance: int = DEFAULT_TOLERANCE, now: float | None = None) -> bool:
    """
    Header ``t=<unix>,v1=<hex>[,v1=...]``, conferido pelo SDK do Stripe.
    A janela vale nos dois sentidos: o SDK só recusa timestamp antigo,
    então a idade (passado ou futuro) é conferida aqui.
    """
    if not secret or not header:
        return False
    timestamp = None
    for chunk in header.split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep and key == "t":
            timestamp = value
    try:
        ts = int(timestamp or "")
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - ts) > tolerance:
        return False

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    try:
        stripe.WebhookSignature.verify_header(payload, header, secret, tolerance=None)
    except stripe.SignatureVerificationError:
        return False
    return True


class StripeAdapter(GatewayAdapter):
    name = "stripe"
    hint = "Gateway Stripe nao configurado. Contate o vendedor."
    accepts_card_data = False  # PaymentMethod criado pelo Stripe.js
    signs_payloads = True
    platform_secret_config = "STRIPE_WEBHOOK_SECRET"
    status_map = {
        "succeeded": "approved",
        "requires_payment_method": "refused",
        "requires_confirmation": "pending",
        "requires_action": "pending",
        "requires_capture": "pending",
        "processing": "pending",
        "canceled": "cancelled",
    }

    def __init__(self, credentials: GatewayCredentials, tolerance: int = DEFAULT_TOLERANCE):
        if not credentials.secret_key:
            raise GatewayConfigError("Stripe: secretKey obrigatoria")
        super().__init__(credentials)
        self.tolerance = tolerance

    @property
    def _opts(self) -> dict[str, Any]:
        return {"api_key": self.credentials.secret_key}

    def _customer(self, data: PaymentInput) -> str | None:
        params = {"email": data.customer.email, "name": data.customer.name}
        if data.customer.phone:
            params["phone"] = data.customer.phone
        customer = stripe.Customer.create(**params, **self._opts)
        return _get(customer, "id")

    def _result_from_intent(self, intent: Any, customer_id: str | None = None) -> PaymentResult:
        provider_status = _get(intent, "status")
        status = self.collapse(self.map_status(provider_status))
        charge = _get(intent, "latest_charge")
        card = _get(charge, "payment_method_details", "card") if not isinstance(charge, str) else None
        pix = _get(intent, "next_action", "pix_display_qr_code")
        boleto = _get(intent, "next_action", "boleto_display_details")
        payment_method = _get(intent, "payment_method")
        if not isinstance(payment_method, (str, type(None))):
            payment_method = _get(payment_method, "id")
        error = None
        if status == "refused":
            error = decline_message(_get(intent, "last_payment_error", "decline_code")
                                    or _get(intent, "last_payment_error", "code"))
        return PaymentResult(
            success=status != "refused",
            gateway_payment_id=_get(intent, "id"),
            status=status,
            pix_code=_get(pix, "data"),
            pix_qr_code=_get(pix, "image_url_png"),
            boleto_url=_get(boleto, "hosted_voucher_url"),
            boleto_barcode=_get(boleto, "number"),
            card_last_four=_get(card, "last4"),
            card_brand=_get(card, "brand"),
            saved_customer_id=customer_id or _get(intent, "customer"),
            saved_payment_method_id=payment_method,
            error=error,
            provider_status=provider_status,
            raw=intent,
        )

    def create_payment(self, data: PaymentInput) -> PaymentResult:
        rejected = self.check_input(data)
        if rejected:
            return rejected

        currency = (data.currency or "BRL").lower()
        params: dict[str, Any] = {
            "amount": to_minor_units(data.amount, currency),
            "currency": currency,
            "description": data.description or DEFAULT_DESCRIPTION,
            "metadata": {
                "external_ref": data.external_ref or "",
                "customer_tax_id": only_digits(data.customer.tax_id),
                **{k: str(v) for k, v in (data.metadata or {}).items()},
            },
            "expand": ["latest_charge"],
        }
        billing = {"name": data.customer.name, "email": data.customer.email}

        if data.payment_method == "credit_card":
            params["payment_method_types"] = ["card"]
            params["payment_method"] = data.card_token
            params["confirm"] = True
            # guarda o cartão para upsell one-click
            params["setup_future_usage"] = "off_session"
        elif data.payment_method == "pix":
            params["payment_method_types"] = ["pix"]
            params["payment_method_data"] = {"type": "pix", "billing_details": billing}
            params["confirm"] = True
        else:
            params["payment_method_types"] = ["boleto"]
            params["payment_method_data"] = {
                "type": "boleto",
                "boleto": {"tax_id": only_digits(data.customer.tax_id)},
                "billing_details": billing,
            }
            params["confirm"] = True

        try:
            customer_id = self._customer(data)
            if customer_id:
                params["customer"] = customer_id
            intent = stripe.PaymentIntent.create(**params, **self._opts)
        except stripe.CardError as e:
            return PaymentResult.failed(decline_message(getattr(e, "code", None)), raw=getattr(e, "json_body", None))
        except stripe.StripeError as e:
            raise GatewayError(f"Stripe: {getattr(e, 'user_message', None) or e}") from e
        return self._result_from_intent(intent, customer_id)

    def charge_saved_card(self, customer_id: str, payment_method_id: str, amount: Decimal,
                          currency: str, description: str, metadata: dict | None = None) -> PaymentResult:
        """Cobrança off-session com cartão salvo (upsell one-click)."""
        currency = (currency or "BRL").lower()
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount, currency),
                currency=currency,
                customer=customer_id,
                payment_method=payment_method_id,
                confirm=True,
                off_session=True,
                description=description,
                metadata={k: str(v) for k, v in (metadata or {}).items()},
                **self._opts,
            )
        except stripe.CardError as e:
            intent = _get(e, "error", "payment_intent")
            code = getattr(e, "code", None)
            if code == "authentication_required":
                provider_status = "requires_action"
            else:
                provider_status = _get(intent, "status") or "requires_payment_method"
            result = PaymentResult.failed(decline_message(code), raw=getattr(e, "json_body", None))
            result.gateway_payment_id = _get(intent, "id") or ""
            result.provider_status = provider_status
            return result
        except stripe.StripeError as e:
            raise GatewayError(f"Stripe: {getattr(e, 'user_message', None) or e}") from e
        return self._result_from_intent(intent, customer_id)

    def get_status(self, payment_id: str) -> PaymentStatus:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_id, expand=["latest_charge"], **self._opts)
        except stripe.StripeError as e:
            raise GatewayError(f"Stripe: {e}") from e

        status = self.map_status(_get(intent, "status"))
        charge = _get(intent, "latest_charge")
        paid_at = None
        if status == "approved" and not isinstance(charge, str):
            if _get(charge, "disputed"):
                status = "chargeback"
            elif _get(charge, "refunded"):
                status = "refunded"
            created = _get(charge, "created")
            if created:
                paid_at = datetime.fromtimestamp(created, tz=timezone.utc).replace(tzinfo=None)

        payment_method = _get(intent, "payment_method")
        if not isinstance(payment_method, (str, type(None))):
            payment_method = _get(payment_method, "id")
        return PaymentStatus(
            gateway_payment_id=payment_id,
            status=status,
            paid_at=paid_at,
            saved_customer_id=_get(intent, "customer"),
            saved_payment_method_id=payment_method,
            raw=intent,
        )

    def refund(self, payment_id: str, amount: Decimal | None = None) -> RefundResult:
        params: dict[str, Any] = {"payment_intent": payment_id}
        try:
            if amount:
                intent = stripe.PaymentIntent.retrieve(payment_id, **self._opts)
                params["amount"] = to_minor_units(amount, _get(intent, "currency") or "brl")
            result = stripe.Refund.create(**params, **self._opts)
        except stripe.StripeError as e:
            return RefundResult(success=False, error=getattr(e, "user_message", None) or str(e),
                                raw=getattr(e, "json_body", None))
        if _get(result, "status") in ("failed", "canceled"):
            return RefundResult(success=False, refund_id=_get(result, "id"),
                                error=_get(result, "failure_reason") or "Falha no reembolso", raw=result)
        return RefundResult(success=True, refund_id=_get(result, "id"), raw=result)

    def verify_webhook(self, payload, signature, headers: Mapping[str, str] | None = None) -> bool:
        return verify_stripe_signature(payload, signature, self.credentials.webhook_secret or "",
                                       tolerance=self.tolerance)
