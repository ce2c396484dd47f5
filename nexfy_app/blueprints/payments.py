# nexfy_app/blueprints/payments.py
from __future__ import annotations
from flask import Blueprint, request, jsonify

from .. import repository
from ..decorators import api_login_required, current_user
from ..errors import InvalidRequest, NotFound
from ..schemas import CreatePaymentRequest, RefundRequest, UpsellRequest, parse
from ..services.checkout import create_payment
from ..services.refunds import request_refund
from ..services.upsell import purchase_upsell

bp = Blueprint("payments", __name__, url_prefix="/payments")


def _iso(value):
    return value.isoformat() if value else None


@bp.post("/create")
def create():
    req = parse(CreatePaymentRequest, request.get_json(silent=True))
    return jsonify(create_payment(req))


@bp.get("/status")
def status():
    """Polling da tela de obrigado (PIX/boleto). Só leitura."""
    raw_id = request.args.get("id", "")
    if not raw_id.isdigit():
        raise InvalidRequest("ID da transacao obrigatorio")
    tx = repository.get_transaction(int(raw_id))
    if not tx:
        raise NotFound("Transacao nao encontrada")
    return jsonify({
        "id": tx.id,
        "status": tx.status,
        "paymentMethod": tx.payment_method,
        "pixCode": tx.pix_code,
        "pixQrCode": tx.pix_qr_code,
        "boletoUrl": tx.boleto_url,
        "paidAt": _iso(tx.paid_at),
    })


@bp.post("/refund")
@api_login_required
def refund():
    req = parse(RefundRequest, request.get_json(silent=True))
    result = request_refund(req.transaction_id, current_user(), amount=req.amount, reason=req.reason)
    return jsonify(result), (200 if result["success"] else 400)


@bp.post("/upsell")
def upsell():
    req = parse(UpsellRequest, request.get_json(silent=True))
    return jsonify(purchase_upsell(req.transaction_id, req.upsell_id))
