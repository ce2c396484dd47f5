# tests/test_entitlements.py
from nexfy_app.models import Entitlement, User
from nexfy_app.services.entitlements import grant_access, revoke_access


def test_grant_creates_customer_and_entitlement(factory, db_session):
    product = factory.product()
    tx = factory.transaction(product, status="approved", customer_email="Novo@Cliente.com")

    ent = grant_access(tx, notify=False)
    buyer = User.query.get(ent.user_id)
    assert buyer.email == "novo@cliente.com"
    assert buyer.role == "customer"
    assert buyer.password_hash
    assert ent.is_active
    assert ent.product_id == product.id
    db_session.refresh(tx)
    assert tx.user_id == buyer.id


def test_grant_is_idempotent(factory, app, http):
    app.config["RESEND_API_KEY"] = "re_test"
    try:
        product = factory.product()
        tx = factory.transaction(product, status="approved")
        first = grant_access(tx)
        second = grant_access(tx)
    finally:
        app.config["RESEND_API_KEY"] = ""
    assert first.id == second.id
    assert Entitlement.query.count() == 1
    assert len(http.calls_to("resend.com")) == 1


def test_existing_buyer_is_reused(factory):
    product = factory.product()
    buyer = factory.user(name="Maria", email="maria@cliente.com", role="customer")
    tx = factory.transaction(product, status="approved", customer_email="MARIA@cliente.com")
    ent = grant_access(tx, notify=False)
    assert ent.user_id == buyer.id
    assert User.query.filter(User.email.ilike("maria@cliente.com")).count() == 1


def test_revoke_deactivates_without_deleting(factory, db_session):
    product = factory.product()
    tx = factory.transaction(product, status="approved")
    grant_access(tx, notify=False)
    assert revoke_access(tx) == 1
    db_session.commit()
    ent = Entitlement.query.one()
    assert ent.is_active is False
    assert ent.revoked_at is not None
    assert revoke_access(tx) == 0


def test_welcome_email_failure_does_not_block_access(factory, app, http):
    import requests
    app.config["RESEND_API_KEY"] = "re_test"
    http.on("POST", "resend.com", exc=requests.ConnectionError("smtp down"))
    try:
        product = factory.product()
        tx = factory.transaction(product, status="approved")
        ent = grant_access(tx)
    finally:
        app.config["RESEND_API_KEY"] = ""
    assert ent.is_active


def test_no_access_for_transaction_that_is_not_approved(factory):
    product = factory.product()
    for status in ("refunded", "chargeback", "pending"):
        tx = factory.transaction(product, status=status)
        assert grant_access(tx, notify=False) is None
        assert Entitlement.query.filter_by(transaction_id=tx.id).count() == 0
