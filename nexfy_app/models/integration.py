# nexfy_app/models/integration.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class GatewayCredential(db.Model):
    """Credenciais de um vendedor para um provedor de pagamento."""
    __tablename__ = "gateway_credentials"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    provider = db.Column(db.String(50), nullable=False)  # mercadopago, efi, pushinpay, beehive, hypercash, stripe
    credentials = db.Column(db.JSON, nullable=False, default=dict)
    sandbox = db.Column(db.Boolean, default=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "provider", name="uq_gateway_credentials_user_provider"),
    )


class SellerWebhook(db.Model):
    """URL configurada pelo vendedor para receber eventos de venda."""
    __tablename__ = "seller_webhooks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)  # None = todos
    url = db.Column(db.Text, nullable=False)
    events = db.Column(db.JSON)  # ex.: ["payment.approved"]; vazio = todos
    secret = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def wants(self, event: str, product_id: int) -> bool:
        if not self.is_active:
            return False
        if self.product_id and self.product_id != product_id:
            return False
        return not self.events or event in self.events


class UtmifyIntegration(db.Model):
    __tablename__ = "utmify_integrations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    api_token = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
