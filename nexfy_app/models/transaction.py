# nexfy_app/models/transaction.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

PAYMENT_METHODS = ("pix", "credit_card", "boleto")
STATUSES = ("pending", "approved", "refused", "refunded", "chargeback", "cancelled", "expired")
REFUND_STATUSES = ("pending", "approved", "refused")
UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")


class Transaction(db.Model):
    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=True)  # comprador (após aprovação)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), index=True, nullable=False)
    offer_id = db.Column(db.Integer, db.ForeignKey("product_offers.id"), nullable=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)

    gateway = db.Column(db.String(50), nullable=False)
    gateway_payment_id = db.Column(db.String(255), nullable=True)  # nulo até o gateway responder
    payment_method = db.Column(db.String(20), nullable=False)       # pix, credit_card, boleto
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    discount = db.Column(db.Numeric(10, 2), default=0)
    currency = db.Column(db.String(3), default="BRL")
    installments = db.Column(db.Integer, default=1)

    # snapshot do comprador
    customer_name = db.Column(db.String(255))
    customer_email = db.Column(db.String(255), index=True)
    customer_phone = db.Column(db.String(20))
    customer_tax_id = db.Column(db.String(14))

    # artefatos do meio de pagamento
    pix_code = db.Column(db.Text)
    pix_qr_code = db.Column(db.Text)
    boleto_url = db.Column(db.Text)
    boleto_barcode = db.Column(db.Text)
    card_last_four = db.Column(db.String(4))
    card_brand = db.Column(db.String(20))

    # cartão salvo no provedor (upsell one-click)
    saved_customer_id = db.Column(db.String(255))
    saved_payment_method_id = db.Column(db.String(255))

    parent_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    extra = db.Column("metadata", db.JSON)  # ex.: {"order_bump_ids": [..]}

    utm_source = db.Column(db.String(255))
    utm_medium = db.Column(db.String(255))
    utm_campaign = db.Column(db.String(255))
    utm_content = db.Column(db.String(255))
    utm_term = db.Column(db.String(255))

    paid_at = db.Column(db.DateTime)
    refunded_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = db.relationship("Product", backref=db.backref("transactions", lazy="dynamic"))
    coupon = db.relationship("Coupon")
    refunds = db.relationship("Refund", backref="transaction", lazy="dynamic")
    parent = db.relationship("Transaction", remote_side=[id])

    __table_args__ = (
        # chave de idempotência da reconciliação
        db.UniqueConstraint("gateway", "gateway_payment_id", name="uq_transactions_gateway_payment"),
        db.CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
    )

    def utm(self) -> dict:
        return {f: getattr(self, f) for f in UTM_FIELDS if getattr(self, f)}

    def __repr__(self):
        return f"<Transaction {self.id} {self.gateway}:{self.gateway_payment_id} {self.status}>"


class Refund(db.Model):
    __tablename__ = "refunds"

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), index=True, nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    reason = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="pending")  # pending, approved, refused
    gateway_refund_id = db.Column(db.String(255))
    error = db.Column(db.Text)
    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
