# tests/test_checkout.py
from decimal import Decimal

import requests

from nexfy_app.models import Coupon, Entitlement, Transaction
from conftest import payment_body

PIX_CREATED = {
    "id": 987,
    "status": "pending",
    "point_of_interaction": {"transaction_data": {"qr_code": "00020126pix", "qr_code_base64": "iVBOR"}},
}


def test_end_to_end_price_with_coupon_and_bump(client, factory, http):
    product = factory.product(price=Decimal("100.00"))
    coupon = factory.coupon(product, code="DEZOFF", type="percentage", value=10)
    bump = factory.bump(product, price="20.00")
    http.on("POST", "/v1/payments", PIX_CREATED)

    r = client.post("/payments/create", json=payment_body(
        product, couponCode="dezoff", orderBumpIds=[bump.id], utmSource="instagram",
    ))
    assert r.status_code == 200, r.get_json()
    data = r.get_json()
    assert data["status"] == "pending"
    assert data["pixCode"] == "00020126pix"
    assert data["amount"] == "110.00"

    # o gateway recebe o valor calculado no servidor
    assert http.calls_to("/v1/payments", "POST")[0].json["transaction_amount"] == 110.0

    tx = Transaction.query.get(data["transactionId"])
    assert tx.amount == Decimal("110.00")
    assert tx.discount == Decimal("10.00")
    assert tx.gateway == "mercadopago"
    assert tx.gateway_payment_id == "987"
    assert tx.coupon_id == coupon.id
    assert tx.extra == {"order_bump_ids": [bump.id]}
    assert tx.utm_source == "instagram"
    assert Coupon.query.get(coupon.id).current_uses == 1


def test_client_supplied_amount_is_ignored(client, factory, http):
    product = factory.product(price=Decimal("100.00"))
    http.on("POST", "/v1/payments", PIX_CREATED)
    r = client.post("/payments/create", json=payment_body(product, amount="1.00"))
    assert r.status_code == 200
    assert http.calls_to("/v1/payments", "POST")[0].json["transaction_amount"] == 100.0


def test_unknown_product_is_404(client, factory):
    r = client.post("/payments/create", json={
        **payment_body(factory.product()), "productHash": "nao-existe",
    })
    assert r.status_code == 404
    assert r.get_json()["error"] == "Produto nao encontrado"


def test_disabled_method_is_rejected(client, factory, http):
    product = factory.product(boleto_enabled=False)
    r = client.post("/payments/create", json=payment_body(product, method="boleto"))
    assert r.status_code == 400
    assert r.get_json()["error"] == "Boleto nao habilitado para este produto"
    assert http.calls == []


def test_invalid_payload_returns_details(client, factory):
    product = factory.product()
    body = payment_body(product)
    body["customer"]["cpf"] = "12345678900"
    r = client.post("/payments/create", json=body)
    assert r.status_code == 400
    data = r.get_json()
    assert data["error"] == "Dados invalidos"
    assert any(d["field"].startswith("customer") for d in data["details"])


def test_fields_longer_than_their_columns_are_rejected(client, factory):
    product = factory.product()
    body = payment_body(product, utmCampaign="x" * 256)
    body["customer"]["phone"] = "1" * 21
    r = client.post("/payments/create", json=body)
    assert r.status_code == 400
    fields = {d["field"] for d in r.get_json()["details"]}
    assert any("phone" in f for f in fields)
    assert any("utm" in f.lower() for f in fields)
    assert Transaction.query.count() == 0


def test_invalid_coupon_is_reported(client, factory, http):
    product = factory.product()
    r = client.post("/payments/create", json=payment_body(product, couponCode="NAOEXISTE"))
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cupom invalido"
    assert Transaction.query.count() == 0


def test_fraud_rejection_is_vague_and_creates_nothing(client, factory, http):
    product = factory.product(price=Decimal("6000.00"))
    body = payment_body(product)
    body["customer"]["email"] = "comprador@mailinator.com"
    body["customer"]["phone"] = "12345"
    r = client.post("/payments/create", json=body)
    assert r.status_code == 400
    assert r.get_json()["error"] == "Pagamento nao autorizado. Verifique seus dados."
    assert Transaction.query.count() == 0
    assert http.calls == []


def test_misconfigured_gateway_shows_provider_hint(client, factory):
    product = factory.product(gateway="mercadopago", credentials=False)
    r = client.post("/payments/create", json=payment_body(product))
    assert r.status_code == 500
    assert r.get_json()["error"] == "Gateway Mercado Pago nao configurado. Contate o vendedor."
    assert Transaction.query.count() == 0


def test_unsupported_gateway_on_product(client, factory):
    product = factory.product(gateway="paypal", credentials=False)
    r = client.post("/payments/create", json=payment_body(product))
    assert r.status_code == 500
    assert r.get_json()["error"] == "Gateway de pagamento nao disponivel."


def test_gateway_failure_marks_refused_and_releases_coupon(client, factory, http):
    product = factory.product()
    coupon = factory.coupon(product, max_uses=5)
    http.on("POST", "/v1/payments", exc=requests.ConnectionError("timeout"))

    r = client.post("/payments/create", json=payment_body(product, couponCode=coupon.code))
    assert r.status_code == 500
    assert r.get_json()["error"] == "Erro interno ao processar pagamento"
    tx = Transaction.query.one()
    assert tx.status == "refused"
    assert Coupon.query.get(coupon.id).current_uses == 0


def test_unexpected_adapter_error_is_generic_500_and_releases_coupon(client, factory, monkeypatch):
    from nexfy_app.gateways.mercadopago import MercadoPagoAdapter

    product = factory.product()
    coupon = factory.coupon(product, max_uses=5)

    def broken(self, payment):
        raise ValueError("resposta inesperada do provedor")

    monkeypatch.setattr(MercadoPagoAdapter, "create_payment", broken)
    r = client.post("/payments/create", json=payment_body(product, couponCode=coupon.code))
    assert r.status_code == 500
    assert r.get_json()["error"] == "Erro interno ao processar pagamento"
    assert Transaction.query.one().status == "refused"
    assert Coupon.query.get(coupon.id).current_uses == 0


def test_result_that_cannot_be_stored_is_refused(client, factory, monkeypatch):
    from nexfy_app.gateways import PaymentResult
    from nexfy_app.gateways.mercadopago import MercadoPagoAdapter

    product = factory.product()
    factory.transaction(product, gateway_payment_id="dup-1")
    coupon = factory.coupon(product, max_uses=5)
    monkeypatch.setattr(
        MercadoPagoAdapter, "create_payment",
        lambda self, payment: PaymentResult(success=True, gateway_payment_id="dup-1", status="pending",
                                            pix_code="000201"),
    )
    r = client.post("/payments/create", json=payment_body(product, couponCode=coupon.code))
    assert r.status_code == 500
    newest = Transaction.query.order_by(Transaction.id.desc()).first()
    assert newest.status == "refused"
    assert newest.gateway_payment_id != "dup-1"
    assert Coupon.query.get(coupon.id).current_uses == 0


def test_refused_card_releases_coupon(client, factory, http):
    product = factory.product()
    coupon = factory.coupon(product, max_uses=1)
    http.on("POST", "/v1/payments", {"id": 5, "status": "rejected", "status_detail": "cc_rejected_other_reason"})

    r = client.post("/payments/create", json=payment_body(
        product, method="credit_card", cardToken="card-token", couponCode=coupon.code,
    ))
    assert r.status_code == 200
    data = r.get_json()
    assert data["status"] == "refused"
    assert data["error"] == "cc_rejected_other_reason"
    assert Coupon.query.get(coupon.id).current_uses == 0


def test_exhausted_coupon_cannot_be_used_again(client, factory, http):
    product = factory.product()
    coupon = factory.coupon(product, max_uses=1)
    http.on("POST", "/v1/payments", PIX_CREATED)

    first = client.post("/payments/create", json=payment_body(product, couponCode=coupon.code))
    assert first.status_code == 200
    second = client.post("/payments/create", json=payment_body(product, couponCode=coupon.code))
    assert second.status_code == 400
    assert second.get_json()["error"] == "Cupom esgotado"
    assert Coupon.query.get(coupon.id).current_uses == 1


def test_unsupported_method_for_provider_is_refused_locally(client, factory, http):
    product = factory.product(gateway="pushinpay", card_enabled=True)
    r = client.post("/payments/create", json=payment_body(product, method="credit_card", cardToken="tok"))
    assert r.status_code == 200
    data = r.get_json()
    assert data["status"] == "refused"
    assert data["error"] == "PushinPay suporta apenas PIX"
    assert http.calls_to("pushinpay") == []


def test_installments_above_product_limit(client, factory):
    product = factory.product(max_installments=3)
    r = client.post("/payments/create", json=payment_body(
        product, method="credit_card", cardToken="tok", installments=6,
    ))
    assert r.status_code == 400


def test_synchronous_card_approval_grants_access(client, factory, fake_stripe):
    product = factory.product(gateway="stripe")
    r = client.post("/payments/create", json=payment_body(product, method="credit_card", cardToken="pm_card_visa"))
    assert r.status_code == 200
    data = r.get_json()
    assert data["status"] == "approved"

    tx = Transaction.query.get(data["transactionId"])
    assert tx.paid_at is not None
    assert tx.saved_customer_id == "cus_test_1"
    assert tx.saved_payment_method_id == "pm_test_1"
    assert tx.card_last_four == "4242"
    entitlement = Entitlement.query.filter_by(transaction_id=tx.id).one()
    assert entitlement.is_active
    assert tx.user_id == entitlement.user_id


def test_status_poll(client, factory):
    product = factory.product()
    tx = factory.transaction(product, pix_code="000201")
    r = client.get(f"/payments/status?id={tx.id}")
    assert r.status_code == 200
    assert r.get_json()["status"] == "pending"
    assert r.get_json()["pixCode"] == "000201"

    assert client.get("/payments/status").status_code == 400
    assert client.get("/payments/status?id=999999").status_code == 404
