# nexfy_app/gateways/mercadopago.py
from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Mapping

from .base import (
    DEFAULT_DESCRIPTION, GatewayAdapter, GatewayConfigError, GatewayCredentials,
    PaymentInput, PaymentResult, PaymentStatus, RefundResult,
    constant_time_equals, hmac_sha256_hex, money_str, only_digits,
    parse_datetime, parse_signature_header,
)


class MercadoPagoAdapter(GatewayAdapter):
    name = "mercadopago"
    hint = "Gateway Mercado Pago nao configurado. Contate o vendedor."
    base_url = "https://api.mercadopago.com"
    accepts_card_data = False  # cartão tokenizado no front (MercadoPago.js)
    status_map = {
        "approved": "approved",
        "authorized": "pending",
        "pending": "pending",
        "in_process": "pending",
        "in_mediation": "pending",
        "rejected": "refused",
        "cancelled": "cancelled",
        "refunded": "refunded",
        "charged_back": "chargeback",
    }

    def __init__(self, credentials: GatewayCredentials):
        if not credentials.access_token:
            raise GatewayConfigError("MercadoPago: accessToken obrigatorio")
        super().__init__(credentials)

    @property
    def display_name(self) -> str:
        return "MercadoPago"

    def _call(self, method: str, path: str, body: dict | None = None,
              idempotency_key: str | None = None) -> dict:
        headers = {"Authorization": f"Bearer {self.credentials.access_token}"}
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return self._request(method, f"{self.base_url}{path}", json=body, headers=headers)

    def create_payment(self, data: PaymentInput) -> PaymentResult:
        rejected = self.check_input(data)
        if rejected:
            return rejected

        body: dict[str, Any] = {
            "transaction_amount": float(money_str(data.amount)),
            "description": data.description or DEFAULT_DESCRIPTION,
            "payer": {
                "email": data.customer.email,
                "first_name": data.customer.first_name,
                "last_name": data.customer.last_name,
                "identification": {"type": "CPF", "number": only_digits(data.customer.tax_id)},
            },
            "external_reference": data.external_ref,
        }
        if self.credentials.notification_url:
            body["notification_url"] = self.credentials.notification_url

        if data.payment_method == "pix":
            body["payment_method_id"] = "pix"
        elif data.payment_method == "credit_card":
            body["token"] = data.card_token
            body["installments"] = data.installments or 1
        else:
            body["payment_method_id"] = "bolbradesco"

        result = self._call("POST", "/v1/payments", body, idempotency_key=data.external_ref)
        if result.get("error") or not result.get("id"):
            return PaymentResult.failed(result.get("message") or "Erro MercadoPago", raw=result)

        status = self.collapse(self.map_status(result.get("status")))
        poi = (result.get("point_of_interaction") or {}).get("transaction_data") or {}
        return PaymentResult(
            success=status != "refused",
            gateway_payment_id=str(result["id"]),
            status=status,
            pix_code=poi.get("qr_code"),
            pix_qr_code=poi.get("qr_code_base64"),
            boleto_url=(result.get("transaction_details") or {}).get("external_resource_url"),
            boleto_barcode=(result.get("barcode") or {}).get("content"),
            card_last_four=(result.get("card") or {}).get("last_four_digits"),
            card_brand=result.get("payment_method_id") if data.payment_method == "credit_card" else None,
            error=result.get("status_detail") if status == "refused" else None,
            raw=result,
        )

    def get_status(self, payment_id: str) -> PaymentStatus:
        result = self._call("GET", f"/v1/payments/{payment_id}")
        return PaymentStatus(
            gateway_payment_id=str(result.get("id") or payment_id),
            status=self.map_status(result.get("status")),
            paid_at=parse_datetime(result.get("date_approved")),
            raw=result,
        )

    def refund(self, payment_id: str, amount: Decimal | None = None) -> RefundResult:
        body = {"amount": float(money_str(amount))} if amount else {}
        result = self._call("POST", f"/v1/payments/{payment_id}/refunds", body)
        if result.get("error") or not result.get("id"):
            return RefundResult(success=False, error=result.get("message") or "Erro no reembolso", raw=result)
        return RefundResult(success=True, refund_id=str(result["id"]), raw=result)

    def verify_webhook(self, payload, signature, headers: Mapping[str, str] | None = None) -> bool:
        """
        Header ``x-signature: ts=<ts>,v1=<hmac>``. O manifesto assinado é
        ``id:<data.id>;request-id:<x-request-id>;ts:<ts>;``.
        """
        parts = parse_signature_header(signature)
        ts, v1 = parts.get("ts"), parts.get("v1")
        if not ts or not v1:
            return False
        secret = self.credentials.webhook_secret or self.credentials.access_token
        data_id = _data_id(payload)
        request_id = ""
        if headers:
            lowered = {k.lower(): v for k, v in headers.items()}
            request_id = lowered.get("x-request-id", "")
        manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
        return constant_time_equals(hmac_sha256_hex(secret, manifest), v1)


def _data_id(payload) -> str:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", "replace")
    try:
        body = json.loads(payload)
    except ValueError:
        return ""
    data = body.get("data") if isinstance(body, dict) else None
    if isinstance(data, dict) and data.get("id") is not None:
        return str(data["id"]).lower()
    return ""
