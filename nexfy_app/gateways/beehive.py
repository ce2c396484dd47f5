# nexfy_app/gateways/beehive.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from .base import (
    DEFAULT_DESCRIPTION, GatewayAdapter, GatewayConfigError, GatewayCredentials,
    PaymentInput, PaymentResult, PaymentStatus, RefundResult,
    only_digits, parse_datetime, to_cents,
)


class BeehiveAdapter(GatewayAdapter):
    """Cartão de crédito; aceita token ou dados do cartão."""
    name = "beehive"
    base_url = "https://api.beehivepay.com/v1"
    supported_methods = ("credit_card",)
    signs_payloads = True
    status_map = {
        "approved": "approved",
        "paid": "approved",
        "pending": "pending",
        "processing": "pending",
        "refused": "refused",
        "failed": "refused",
        "refunded": "refunded",
        "chargeback": "chargeback",
        "canceled": "cancelled",
    }

    def __init__(self, credentials: GatewayCredentials):
        if not credentials.api_key:
            raise GatewayConfigError("Beehive: apiKey obrigatoria")
        super().__init__(credentials)

    def _call(self, method: str, path: str, body: dict | None = None) -> dict:
        return self._request(
            method, f"{self.base_url}{path}", json=body,
            headers={"Authorization": f"Bearer {self.credentials.api_key}"},
        )

    def create_payment(self, data: PaymentInput) -> PaymentResult:
        rejected = self.check_input(data)
        if rejected:
            return rejected

        body: dict[str, Any] = {
            "amount": to_cents(data.amount),
            "currency": data.currency or "BRL",
            "installments": data.installments or 1,
            "customer": {
                "name": data.customer.name,
                "email": data.customer.email,
                "document": only_digits(data.customer.tax_id),
                "phone": data.customer.phone,
            },
            "description": data.description or DEFAULT_DESCRIPTION,
            "external_reference": data.external_ref,
            "postback_url": self.credentials.notification_url,
        }
        if data.card_token:
            body["card_token"] = data.card_token
        else:
            body["card"] = {
                "number": data.card.clean_number,
                "holder_name": data.card.holder_name,
                "exp_month": data.card.exp_month,
                "exp_year": data.card.exp_year,
                "cvv": data.card.cvv,
            }

        result = self._call("POST", "/payments", body)
        if not result.get("id"):
            return PaymentResult.failed(result.get("message") or "Erro Beehive", raw=result)

        status = self.collapse(self.map_status(result.get("status")))
        return PaymentResult(
            success=status != "refused",
            gateway_payment_id=str(result["id"]),
            status=status,
            card_last_four=data.card.last_four if data.card else result.get("card_last_digits"),
            card_brand=result.get("card_brand"),
            error=(result.get("refused_reason") or "Pagamento recusado") if status == "refused" else None,
            raw=result,
        )

    def get_status(self, payment_id: str) -> PaymentStatus:
        result = self._call("GET", f"/payments/{payment_id}")
        return PaymentStatus(
            gateway_payment_id=payment_id,
            status=self.map_status(result.get("status")),
            paid_at=parse_datetime(result.get("paid_at")),
            saved_customer_id=result.get("customer_id"),
            raw=result,
        )

    def refund(self, payment_id: str, amount: Decimal | None = None) -> RefundResult:
        body = {"amount": to_cents(amount)} if amount else {}
        result = self._call("POST", f"/payments/{payment_id}/refund", body)
        if result.get("success") or result.get("status") == "refunded":
            return RefundResult(success=True, refund_id=result.get("refund_id"), raw=result)
        return RefundResult(success=False, error=result.get("message") or "Erro no reembolso", raw=result)

    def verify_webhook(self, payload, signature, headers: Mapping[str, str] | None = None) -> bool:
        secret = self.credentials.webhook_secret or self.credentials.api_key
        return self._hmac_matches(secret, payload, signature)
