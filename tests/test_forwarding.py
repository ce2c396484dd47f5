# tests/test_forwarding.py
import json
from datetime import datetime

import requests

from nexfy_app.models import SellerWebhook
from nexfy_app.services.forwarding import dispatch_seller_webhooks, forward_event, send_to_utmify, sign
from conftest import hmac_hex


def test_sign_prefixes_sha256():
    assert sign("s3cr3t", b'{"a":1}') == "sha256=" + hmac_hex("s3cr3t", b'{"a":1}')


def test_wants_filters_by_event_and_product():
    hook = SellerWebhook(url="https://x", events=["payment.approved"], product_id=7, is_active=True)
    assert hook.wants("payment.approved", 7)
    assert not hook.wants("payment.refunded", 7)
    assert not hook.wants("payment.approved", 8)
    assert SellerWebhook(url="https://x", events=[], is_active=True).wants("payment.chargeback", 1)
    assert not SellerWebhook(url="https://x", is_active=False).wants("payment.approved", 1)


def test_dispatch_signs_body_and_counts_deliveries(factory, http):
    product = factory.product()
    factory.seller_webhook(product.seller)
    factory.seller_webhook(product.seller, url="https://other.example/hook", secret=None)
    factory.seller_webhook(product.seller, url="https://refunds.example/hook", events=["payment.refunded"])
    http.on("POST", "other.example", status=500)

    delivered = dispatch_seller_webhooks("payment.approved", {"transactionId": 1}, product.id, product.user_id)
    assert delivered == 1
    assert http.calls_to("refunds.example") == []

    signed = http.calls_to("seller.example")[0]
    body = signed.data
    assert json.loads(body)["event"] == "payment.approved"
    assert signed.headers["X-Nexfy-Signature"] == sign("hook-secret", body)
    assert "X-Nexfy-Signature" not in http.calls_to("other.example")[0].headers


def test_utmify_body(factory, http):
    product = factory.product()
    factory.utmify(product.seller)
    tx = factory.transaction(product, status="approved", paid_at=datetime(2024, 5, 1, 12, 0, 0),
                             utm_source="instagram", utm_campaign="black")

    assert send_to_utmify(tx, "approved", product.user_id, offer_name=product.name)
    call = http.calls_to("utmify")[0]
    assert call.headers == {"x-api-token": "utm-token"}
    body = call.json
    assert body["orderId"] == str(tx.id)
    assert body["status"] == "paid"
    assert body["paymentMethod"] == 3
    assert body["offer.plans[0].priceInCents"] == 10000
    assert body["approvedDate"] == "2024-05-01T12:00:00Z"
    assert body["trackingParameters.utm_source"] == "instagram"
    assert body["trackingParameters.utm_campaign"] == "black"


def test_utmify_skipped_without_integration(factory, http):
    product = factory.product()
    tx = factory.transaction(product)
    assert send_to_utmify(tx, "pending", product.user_id) is False
    assert http.calls == []


def test_forward_event_survives_failures(factory, http):
    product = factory.product()
    factory.seller_webhook(product.seller)
    factory.utmify(product.seller)
    http.on("POST", "seller.example", exc=requests.ConnectionError("down"))
    http.on("POST", "utmify", exc=requests.Timeout("slow"))
    tx = factory.transaction(product, status="refunded")

    forward_event("payment.refunded", tx)
    assert len(http.calls) == 2
