# nexfy_app/gateways/pushinpay.py
from __future__ import annotations

from decimal import Decimal
from typing import Mapping

from .base import (
    GatewayAdapter, GatewayConfigError, GatewayCredentials, PaymentInput,
    PaymentResult, PaymentStatus, RefundResult, only_digits, parse_datetime, to_cents,
)


class PushinPayAdapter(GatewayAdapter):
    """Somente PIX (cash-in). Valores em centavos."""
    name = "pushinpay"
    base_url = "https://api.pushinpay.com.br/api"
    supported_methods = ("pix",)
    signs_payloads = True
    status_map = {
        "created": "pending",
        "pending": "pending",
        "approved": "approved",
        "paid": "approved",
        "expired": "expired",
        "canceled": "cancelled",
        "refunded": "refunded",
    }

    def __init__(self, credentials: GatewayCredentials):
        if not credentials.api_key:
            raise GatewayConfigError("PushinPay: apiKey obrigatoria")
        super().__init__(credentials)

    @property
    def display_name(self) -> str:
        return "PushinPay"

    def _call(self, method: str, path: str, body: dict | None = None) -> dict:
        return self._request(
            method, f"{self.base_url}{path}", json=body,
            headers={"Authorization": f"Bearer {self.credentials.api_key}", "Accept": "application/json"},
        )

    def create_payment(self, data: PaymentInput) -> PaymentResult:
        rejected = self.check_input(data)
        if rejected:
            return rejected

        body = {
            "value": to_cents(data.amount),
            "webhook_url": self.credentials.notification_url,
            "payer": {
                "name": data.customer.name,
                "document": only_digits(data.customer.tax_id),
                "email": data.customer.email,
            },
            "external_reference": data.external_ref,
        }
        result = self._call("POST", "/pix/cashIn", body)
        if not result.get("id"):
            return PaymentResult.failed(result.get("message") or "Erro PushinPay", raw=result)
        return PaymentResult(
            success=True,
            gateway_payment_id=str(result["id"]),
            status="pending",
            pix_code=result.get("qr_code"),
            pix_qr_code=result.get("qr_code_base64"),
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
        # PushinPay só devolve o valor integral
        result = self._call("POST", f"/pix/cashIn/{payment_id}/refund")
        if result.get("success") or result.get("status") == "refunded":
            return RefundResult(success=True, refund_id=result.get("refund_id"), raw=result)
        return RefundResult(success=False, error=result.get("message") or "Erro no reembolso", raw=result)

    def verify_webhook(self, payload, signature, headers: Mapping[str, str] | None = None) -> bool:
        secret = self.credentials.webhook_secret or self.credentials.api_key
        return self._hmac_matches(secret, payload, signature)
