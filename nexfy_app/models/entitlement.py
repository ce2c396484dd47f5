# nexfy_app/models/entitlement.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class Entitlement(db.Model):
    __tablename__ = "entitlements"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), index=True, nullable=False)
    # uma liberação por compra aprovada
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    granted_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    revoked_at = db.Column(db.DateTime)

    user = db.relationship("User", backref=db.backref("entitlements", lazy="dynamic"))
    transaction = db.relationship("Transaction", backref=db.backref("entitlement", uselist=False))
