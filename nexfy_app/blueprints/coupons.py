# nexfy_app/blueprints/coupons.py
from __future__ import annotations
from flask import Blueprint, request, jsonify

from .. import repository
from ..schemas import CouponValidateRequest, parse
from ..services.pricing import CouponError, compute_discount, q, validate_coupon

bp = Blueprint("coupons", __name__, url_prefix="/coupons")


@bp.post("/validate")
def validate():
    """Pré-visualização do desconto no checkout; a cobrança recalcula tudo."""
    req = parse(CouponValidateRequest, request.get_json(silent=True))
    product = repository.get_active_product_by_hash(req.product_hash)
    if not product:
        return jsonify({"valid": False, "error": "Produto nao encontrado"}), 404
    try:
        coupon = validate_coupon(product, req.code)
    except CouponError as e:
        return jsonify({"valid": False, "error": str(e)})
    discount = compute_discount(coupon.type, coupon.value, product.price)
    return jsonify({
        "valid": True,
        "discount": str(discount),
        "type": coupon.type,
        "value": str(q(coupon.value)),
    })
