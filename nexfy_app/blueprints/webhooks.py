# nexfy_app/blueprints/webhooks.py
"""
Recebimento de notificações dos gateways.

Registra o corpo bruto antes de qualquer validação, confere a assinatura da
plataforma (Stripe) e responde 200; a reconciliação roda fora da requisição.
"""
from __future__ import annotations
import json
from flask import Blueprint, request, jsonify, current_app

from .. import repository
from ..gateways import GATEWAYS
from ..gateways.stripe_gateway import verify_stripe_signature
from ..services.jobs import defer
from ..services.reconciler import extract_signature, reconcile

bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@bp.post("/<gateway>")
def receive(gateway: str):
    raw_body = request.get_data(as_text=True)
    headers = {k.lower(): v for k, v in request.headers.items()}
    log = repository.create_webhook_log(gateway, raw_body, headers)

    try:
        json.loads(raw_body)
    except ValueError:
        repository.finish_webhook_log(log.id, 400, "Payload invalido")
        return jsonify({"error": "Invalid payload"}), 400

    adapter_cls = GATEWAYS.get(gateway)
    if adapter_cls is None:
        repository.finish_webhook_log(log.id, 404, "Gateway nao suportado")
        return jsonify({"error": "Gateway nao suportado"}), 404

    signature = extract_signature(headers)
    cfg = current_app.config
    secret = cfg.get(adapter_cls.platform_secret_config) if adapter_cls.platform_secret_config else None
    if secret and not verify_stripe_signature(raw_body, signature, secret,
                                              tolerance=int(cfg.get("WEBHOOK_TOLERANCE_SECONDS", 600))):
        if not cfg.get("WEBHOOK_ALLOW_INVALID_SIGNATURE"):
            current_app.logger.warning("Invalid %s webhook signature (log %s)", gateway, log.id)
            repository.finish_webhook_log(log.id, 401, "Assinatura invalida")
            return jsonify({"error": "Invalid signature"}), 401
        current_app.logger.warning("Invalid %s webhook signature accepted (debug flag, log %s)", gateway, log.id)

    defer(reconcile, gateway, raw_body, signature, log.id, headers)
    return jsonify({"received": True})
