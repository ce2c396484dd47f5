# nexfy_app/gateways/hypercash.py
from __future__ import annotations

from decimal import Decimal
from typing import Mapping

from .base import (
    DEFAULT_DESCRIPTION, GatewayAdapter, GatewayConfigError, GatewayCredentials,
    PaymentInput, PaymentResult, PaymentStatus, RefundResult,
    only_digits, parse_datetime, to_cents,
)


class HypercashAdapter(GatewayAdapter):
    """Cartão de crédito com dados completos; não trabalha com token."""
    name = "hypercash"
    base_url = "https://api.hypercash.com.br/v1"
    supported_methods = ("credit_card",)
    accepts_card_token = False
    requires_card_data = True
    signs_payloads = True
    status_map = {
        "approved": "approved",
        "pending": "pending",
        "refused": "refused",
        "refunded": "refunded",
        "chargeback": "chargeback",
        "cancelled": "cancelled",
    }

    def __init__(self, credentials: GatewayCredentials):
        if not credentials.api_key:
            raise GatewayConfigError("Hypercash: apiKey obrigatoria")
        super().__init__(credentials)

    def _call(self, method: str, path: str, body: dict | None = None) -> dict:
        return self._request(
            method, f"{self.base_url}{path}", json=body,
            headers={"X-Api-Key": self.credentials.api_key},
        )

    def create_payment(self, data: PaymentInput) -> PaymentResult:
        rejected = self.check_input(data)
        if rejected:
            return rejected

        card = data.card
        body = {
            "amount": to_cents(data.amount),
            "currency": data.currency or "BRL",
            "installments": data.installments or 1,
            "card": {
                "number": card.clean_number,
                "holder_name": card.holder_name,
                "exp_month": card.exp_month,
                "exp_year": card.exp_year,
                "cvv": card.cvv,
            },
            "customer": {
                "name": data.customer.name,
                "email": data.customer.email,
                "cpf": only_digits(data.customer.tax_id),
                "phone": data.customer.phone,
            },
            "description": data.description or DEFAULT_DESCRIPTION,
            "external_reference": data.external_ref,
        }
        result = self._call("POST", "/transactions", body)
        if not result.get("id"):
            return PaymentResult.failed(result.get("message") or "Erro Hypercash", raw=result)

        status = self.collapse(self.map_status(result.get("status")))
        return PaymentResult(
            success=status != "refused",
            gateway_payment_id=str(result["id"]),
            status=status,
            card_last_four=card.last_four,
            card_brand=result.get("card_brand"),
            error=(result.get("message") or "Pagamento recusado") if status == "refused" else None,
            raw=result,
        )

    def get_status(self, payment_id: str) -> PaymentStatus:
        result = self._call("GET", f"/transactions/{payment_id}")
        return PaymentStatus(
            gateway_payment_id=payment_id,
            status=self.map_status(result.get("status")),
            paid_at=parse_datetime(result.get("paid_at")),
            raw=result,
        )

    def refund(self, payment_id: str, amount: Decimal | None = None) -> RefundResult:
        body = {"amount": to_cents(amount)} if amount else {}
        result = self._call("POST", f"/transactions/{payment_id}/refund", body)
        if result.get("success") or result.get("refund_id"):
            return RefundResult(success=True, refund_id=result.get("refund_id"), raw=result)
        return RefundResult(success=False, error=result.get("message") or "Erro no reembolso", raw=result)

    def verify_webhook(self, payload, signature, headers: Mapping[str, str] | None = None) -> bool:
        secret = self.credentials.webhook_secret or self.credentials.api_key
        return self._hmac_matches(secret, payload, signature)
