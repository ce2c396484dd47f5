# nexfy_app/models/webhook_log.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class WebhookLog(db.Model):
    """Trilha de auditoria de notificações recebidas. Só o desfecho é gravado depois."""
    __tablename__ = "webhook_logs"

    id = db.Column(db.Integer, primary_key=True)
    gateway = db.Column(db.String(50), nullable=False, index=True)
    event_type = db.Column(db.String(100))      # processed | error
    payload = db.Column(db.Text, nullable=False)  # corpo bruto, como chegou
    headers = db.Column(db.JSON)
    status_code = db.Column(db.Integer)
    response = db.Column(db.Text)
    received_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    processed_at = db.Column(db.DateTime)
