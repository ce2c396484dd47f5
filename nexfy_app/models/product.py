# nexfy_app/models/product.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)  # vendedor
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), default="BRL")
    hash = db.Column(db.String(64), unique=True, nullable=False, index=True)  # link público do checkout

    # gateway escolhido pelo vendedor; credenciais ficam em gateway_credentials
    gateway = db.Column(db.String(50))

    # meios habilitados
    pix_enabled = db.Column(db.Boolean, default=True)
    card_enabled = db.Column(db.Boolean, default=True)
    boleto_enabled = db.Column(db.Boolean, default=False)
    max_installments = db.Column(db.Integer, default=12)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    offers = db.relationship("ProductOffer", backref="product", lazy="dynamic")
    order_bumps = db.relationship(
        "OrderBump", backref="product", lazy="dynamic", foreign_keys="OrderBump.product_id"
    )

    def method_enabled(self, method: str) -> bool:
        return {
            "pix": bool(self.pix_enabled),
            "credit_card": bool(self.card_enabled),
            "boleto": bool(self.boleto_enabled),
        }.get(method, False)


class ProductOffer(db.Model):
    __tablename__ = "product_offers"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), index=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)  # substitui o preço base
    hash = db.Column(db.String(64), unique=True, nullable=False, index=True)
    is_default = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class OrderBump(db.Model):
    __tablename__ = "order_bumps"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), index=True, nullable=False)
    bump_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Upsell(db.Model):
    __tablename__ = "upsells"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), index=True, nullable=False)
    upsell_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class UpsellPurchase(db.Model):
    __tablename__ = "upsell_purchases"

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False)
    upsell_id = db.Column(db.Integer, db.ForeignKey("upsells.id"), nullable=False)
    upsell_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # uma compra por oferta por transação original
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "upsell_id", name="uq_upsell_purchase"),
    )
