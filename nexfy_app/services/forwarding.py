# nexfy_app/services/forwarding.py
# -*- coding: utf-8 -*-
"""
Repasse de eventos de venda: webhooks configurados pelo vendedor e UTMify.
Tudo best-effort: falha aqui é logada e nunca interrompe a reconciliação.
"""
from __future__ import annotations

import json
from datetime import datetime

import requests
from flask import current_app

from .. import repository
from ..gateways.base import hmac_sha256_hex, to_cents

UTMIFY_STATUS = {
    "approved": "paid",
    "pending": "waiting_payment",
    "refunded": "refunded",
    "refused": "refused",
    "chargeback": "chargedback",
}
UTMIFY_METHOD = {"credit_card": 1, "boleto": 2, "pix": 3}


def _iso(value: datetime | None) -> str | None:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ") if value else None


def event_payload(transaction, **extra) -> dict:
    data = {
        "transactionId": transaction.id,
        "productId": transaction.product_id,
        "status": transaction.status,
        "amount": str(transaction.amount),
        "currency": transaction.currency or "BRL",
        "paymentMethod": transaction.payment_method,
        "customerName": transaction.customer_name,
        "customerEmail": transaction.customer_email,
        "customerPhone": transaction.customer_phone or "",
        "paidAt": _iso(transaction.paid_at),
        "refundedAt": _iso(transaction.refunded_at),
        "parentTransactionId": transaction.parent_transaction_id,
        "utm": transaction.utm(),
    }
    data.update(extra)
    return data


def sign(secret: str, body: bytes) -> str:
    return f"sha256={hmac_sha256_hex(secret, body)}"


def dispatch_seller_webhooks(event: str, data: dict, product_id: int, seller_id: int) -> int:
    """Entrega o evento a cada URL ativa do vendedor; devolve quantas aceitaram."""
    body = json.dumps({"event": event, "data": data, "sentAt": _iso(datetime.utcnow())},
                      separators=(",", ":"), default=str).encode("utf-8")
    timeout = float(current_app.config.get("GATEWAY_TIMEOUT", 15))
    delivered = 0
    for hook in repository.list_seller_webhooks(seller_id):
        if not hook.wants(event, product_id):
            continue
        headers = {"Content-Type": "application/json", "X-Nexfy-Event": event}
        if hook.secret:
            headers["X-Nexfy-Signature"] = sign(hook.secret, body)
        try:
            res = requests.post(hook.url, data=body, headers=headers, timeout=timeout)
        except requests.RequestException:
            current_app.logger.exception("Seller webhook %s failed (%s)", hook.id, event)
            continue
        if res.status_code >= 400:
            current_app.logger.warning("Seller webhook %s -> HTTP %s (%s)", hook.id, res.status_code, event)
            continue
        delivered += 1
    return delivered


def send_to_utmify(transaction, status: str, seller_id: int, offer_name: str = "") -> bool:
    integration = repository.get_utmify_integration(seller_id)
    if not integration:
        return False

    body = {
        "orderId": str(transaction.id),
        "platform": "NexFy",
        "paymentMethod": UTMIFY_METHOD.get(transaction.payment_method, 3),
        "status": UTMIFY_STATUS.get(status, "waiting_payment"),
        "customer.email": transaction.customer_email,
        "customer.phone": transaction.customer_phone or "",
        "customer.document": transaction.customer_tax_id or "",
        "offer.name": offer_name,
        "offer.paymentType": "one_time",
        "offer.plans[0].name": "Compra Avulsa",
        "offer.plans[0].quantity": 1,
        "offer.plans[0].priceInCents": to_cents(transaction.amount),
        "createdAt": _iso(transaction.created_at),
    }
    if status == "approved" and transaction.paid_at:
        body["approvedDate"] = _iso(transaction.paid_at)
    if status == "refunded" and transaction.refunded_at:
        body["refundedDate"] = _iso(transaction.refunded_at)
    for key, value in transaction.utm().items():
        body[f"trackingParameters.{key}"] = value

    try:
        res = requests.post(
            current_app.config["UTMIFY_API_URL"],
            json=body,
            headers={"x-api-token": integration.api_token},
            timeout=float(current_app.config.get("GATEWAY_TIMEOUT", 15)),
        )
    except requests.RequestException:
        current_app.logger.exception("UTMify send error (tx %s)", transaction.id)
        return False
    if res.status_code >= 400:
        current_app.logger.error("UTMify error: %s %s", res.status_code, res.text[:300])
        return False
    return True


def forward_event(event: str, transaction, **extra) -> None:
    """payment.approved / refused / refunded / chargeback para todos os assinantes."""
    product = transaction.product
    status = event.split(".", 1)[1]
    try:
        dispatch_seller_webhooks(event, event_payload(transaction, **extra), product.id, product.user_id)
    except Exception:
        current_app.logger.exception("Webhook dispatch error (%s, tx %s)", event, transaction.id)
    try:
        send_to_utmify(transaction, status, product.user_id, offer_name=product.name)
    except Exception:
        current_app.logger.exception("UTMify sync error (%s, tx %s)", event, transaction.id)
