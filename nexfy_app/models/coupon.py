# nexfy_app/models/coupon.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)  # vendedor
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)  # None = qualquer produto
    code = db.Column(db.String(50), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)  # percentage | fixed
    value = db.Column(db.Numeric(10, 2), nullable=False)
    max_uses = db.Column(db.Integer, nullable=True)
    current_uses = db.Column(db.Integer, nullable=False, default=0)
    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "code", name="uq_coupon_seller_code"),
    )
