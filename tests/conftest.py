# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import sys
import json
import uuid
import hmac
import time
import hashlib
import pathlib
import tempfile
from decimal import Decimal
from types import SimpleNamespace

import pytest

# =====================================================================================
# Localização do projeto (garante que "nexfy_app" e "config" estejam no sys.path)
# =====================================================================================
PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

VALID_CPF = "52998224725"


# =====================================================================================
# Ambiente de testes unitários (sem serviços externos)
# =====================================================================================
@pytest.fixture(autouse=True, scope="session")
def _testing_env():
    os.environ["APP_ENV"] = "testing"
    os.environ["DISABLE_SCHEDULER"] = "1"
    os.environ.setdefault("SECRET_KEY", "testing-secret")
    yield


# =====================================================================================
# App Flask com SQLite temporário; schema recriado a cada teste
# =====================================================================================
@pytest.fixture(scope="session")
def app(_testing_env):
    from config import TestingConfig
    from nexfy_app import create_app

    fd, db_path = tempfile.mkstemp(prefix="nexfy_test_", suffix=".sqlite")
    os.close(fd)
    app = create_app(
        TestingConfig,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{db_path}",
        BCRYPT_LOG_ROUNDS=4,
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET="whsec_test",
        APP_URL="https://checkout.test",
        RESEND_API_KEY="",
    )
    yield app
    try:
        os.remove(db_path)
    except OSError:
        pass


@pytest.fixture(autouse=True)
def db_session(app):
    """App context aberto durante o teste; tabelas limpas antes de cada um."""
    from nexfy_app.extensions import db

    with app.app_context():
        db.drop_all()
        db.create_all()
        app.extensions["exchange_rates"].clear()
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


# =====================================================================================
# Mocks de serviços externos
#   - requests.request/get/post (sem rede; respostas roteadas por URL)
#   - Stripe (Customer, PaymentIntent, Refund)
# =====================================================================================
class FakeResponse:
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = {} if json_data is None else json_data
        self.text = json.dumps(self._json)
        self.content = self.text.encode("utf-8")

    def json(self):
        return self._json

    def raise_for_status(self):
        import requests
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeHTTP:
    """Registra chamadas e responde pela primeira rota que casar (a mais recente vence)."""

    def __init__(self):
        self.calls = []
        self.routes = []

    def on(self, method, url_part, body=None, status=200, exc=None):
        self.routes.insert(0, (method.upper(), url_part, status, body, exc))

    def request(self, method, url, **kwargs):
        call = SimpleNamespace(method=method.upper(), url=url, kwargs=kwargs,
                               json=kwargs.get("json"), data=kwargs.get("data"),
                               headers=kwargs.get("headers") or {})
        self.calls.append(call)
        for m, part, status, body, exc in self.routes:
            if m == call.method and part in url:
                if exc is not None:
                    raise exc
                return FakeResponse(status, body)
        return FakeResponse(200, {})

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def calls_to(self, url_part, method=None):
        return [c for c in self.calls
                if url_part in c.url and (method is None or c.method == method.upper())]


class FakeStripe:
    def __init__(self):
        self.calls = []
        self.intent_status = "succeeded"
        self.create_error = None
        self.charge = {
            "id": "ch_1",
            "created": 1700000000,
            "disputed": False,
            "refunded": False,
            "payment_method_details": {"card": {"last4": "4242", "brand": "visa"}},
        }
        self._seq = 0

    def _intent(self, intent_id, **extra):
        data = {
            "id": intent_id,
            "status": self.intent_status,
            "currency": "brl",
            "customer": "cus_test_1",
            "payment_method": "pm_test_1",
            "latest_charge": dict(self.charge),
        }
        data.update(extra)
        return data

    def customer_create(self, **kwargs):
        self.calls.append(("Customer.create", kwargs))
        return {"id": "cus_test_1", "email": kwargs.get("email")}

    def intent_create(self, **kwargs):
        self.calls.append(("PaymentIntent.create", kwargs))
        if self.create_error is not None:
            raise self.create_error
        self._seq += 1
        return self._intent(f"pi_test_{self._seq}", customer=kwargs.get("customer", "cus_test_1"))

    def intent_retrieve(self, intent_id, **kwargs):
        self.calls.append(("PaymentIntent.retrieve", {"id": intent_id, **kwargs}))
        return self._intent(intent_id)

    def refund_create(self, **kwargs):
        self.calls.append(("Refund.create", kwargs))
        return {"id": "re_test_1", "status": "succeeded"}

    def called(self, name):
        return [kw for n, kw in self.calls if n == name]


@pytest.fixture(autouse=True)
def http(monkeypatch):
    import requests

    fake = FakeHTTP()
    monkeypatch.setattr(requests, "request", fake.request)
    monkeypatch.setattr(requests, "get", fake.get)
    monkeypatch.setattr(requests, "post", fake.post)
    yield fake


@pytest.fixture(autouse=True)
def fake_stripe(monkeypatch):
    import stripe

    fake = FakeStripe()
    monkeypatch.setattr(stripe.Customer, "create", staticmethod(fake.customer_create))
    monkeypatch.setattr(stripe.PaymentIntent, "create", staticmethod(fake.intent_create))
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", staticmethod(fake.intent_retrieve))
    monkeypatch.setattr(stripe.Refund, "create", staticmethod(fake.refund_create))
    yield fake


# =====================================================================================
# Helpers de assinatura
# =====================================================================================
def hmac_hex(secret: str, message: str | bytes) -> str:
    if isinstance(message, str):
        message = message.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def stripe_header(body: str, secret: str = "whsec_test", ts: int | None = None) -> str:
    ts = int(time.time()) if ts is None else ts
    return f"t={ts},v1={hmac_hex(secret, f'{ts}.{body}')}"


def mercadopago_header(data_id: str, request_id: str, secret: str, ts: int = 1700000000) -> str:
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    return f"ts={ts},v1={hmac_hex(secret, manifest)}"


# =====================================================================================
# Factories de modelos
# =====================================================================================
class Factory:
    def __init__(self, session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def user(self, **kw):
        from nexfy_app.models import User
        data = dict(name="Vendedor", email=f"seller+{uuid.uuid4().hex[:6]}@test.com", role="producer")
        data.update(kw)
        u = User(**data)
        u.set_password("secret123")
        return self._save(u)

    def credential(self, seller, provider, sandbox=False, **creds):
        from nexfy_app.models import GatewayCredential
        return self._save(GatewayCredential(user_id=seller.id, provider=provider,
                                            credentials=creds, sandbox=sandbox))

    def product(self, seller=None, gateway="mercadopago", credentials=True, **kw):
        from nexfy_app.models import Product
        seller = seller or self.user()
        data = dict(
            user_id=seller.id, name="Curso de Python", price=Decimal("100.00"), currency="BRL",
            hash=uuid.uuid4().hex, gateway=gateway, pix_enabled=True, card_enabled=True,
            boleto_enabled=False, max_installments=12, is_active=True,
        )
        data.update(kw)
        product = self._save(Product(**data))
        if credentials and gateway == "mercadopago":
            self.credential(seller, "mercadopago", accessToken="TEST-mp-token")
        elif credentials and gateway == "efi":
            self.credential(seller, "efi", clientId="cid", clientSecret="csecret",
                            certificatePath="/etc/efi/cert.pem", pixKey="chave@pix.com")
        elif credentials and gateway in ("pushinpay", "beehive", "hypercash"):
            self.credential(seller, gateway, apiKey=f"{gateway}-key")
        return product

    def coupon(self, product, code="DEZOFF", type="percentage", value=10, **kw):
        from nexfy_app.models import Coupon
        data = dict(user_id=product.user_id, code=code, type=type, value=Decimal(str(value)),
                    current_uses=0, is_active=True)
        data.update(kw)
        return self._save(Coupon(**data))

    def offer(self, product, price, **kw):
        from nexfy_app.models import ProductOffer
        data = dict(product_id=product.id, name="Oferta", price=Decimal(str(price)),
                    hash=uuid.uuid4().hex, is_active=True)
        data.update(kw)
        return self._save(ProductOffer(**data))

    def bump(self, product, price, **kw):
        from nexfy_app.models import OrderBump
        bump_product = kw.pop("bump_product", None) or self.product(product.seller, credentials=False,
                                                                    name="Bonus", price=Decimal(str(price)))
        data = dict(product_id=product.id, bump_product_id=bump_product.id, title="Leve junto",
                    price=Decimal(str(price)), is_active=True)
        data.update(kw)
        return self._save(OrderBump(**data))

    def upsell(self, product, price=Decimal("47.00"), **kw):
        from nexfy_app.models import Upsell
        upsell_product = kw.pop("upsell_product", None) or self.product(product.seller, gateway="stripe",
                                                                        credentials=False, name="Mentoria")
        data = dict(product_id=product.id, upsell_product_id=upsell_product.id, title="Mentoria",
                    price=Decimal(str(price)), is_active=True)
        data.update(kw)
        return self._save(Upsell(**data))

    def transaction(self, product, **kw):
        from nexfy_app.models import Transaction
        data = dict(
            product_id=product.id, gateway=product.gateway or "mercadopago",
            gateway_payment_id=uuid.uuid4().hex[:12], payment_method="pix", status="pending",
            amount=product.price, discount=Decimal("0"), currency="BRL",
            customer_name="Maria Silva", customer_email="maria@cliente.com",
            customer_phone="11999998888", customer_tax_id=VALID_CPF,
        )
        data.update(kw)
        return self._save(Transaction(**data))

    def seller_webhook(self, seller, url="https://seller.example/hook", **kw):
        from nexfy_app.models import SellerWebhook
        data = dict(user_id=seller.id, url=url, secret="hook-secret", is_active=True)
        data.update(kw)
        return self._save(SellerWebhook(**data))

    def utmify(self, seller, token="utm-token"):
        from nexfy_app.models import UtmifyIntegration
        return self._save(UtmifyIntegration(user_id=seller.id, api_token=token, is_active=True))


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


def login(client, user):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user.id, "email": user.email, "name": user.name,
                        "is_admin": user.is_platform_admin}
    return client


def payment_body(product, method="pix", **kw):
    body = {
        "productHash": product.hash,
        "paymentMethod": method,
        "customer": {
            "name": "Maria Silva",
            "email": "maria@cliente.com",
            "cpf": VALID_CPF,
            "phone": "11999998888",
        },
    }
    body.update(kw)
    return body
