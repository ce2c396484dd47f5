# nexfy_app/blueprints/currency.py
from __future__ import annotations
from flask import Blueprint, request, jsonify

from ..errors import InvalidRequest
from ..schemas import ConvertPriceRequest, parse
from ..services.currency import CurrencyError, convert, get_rates, is_supported

bp = Blueprint("currency", __name__)


@bp.get("/exchange-rates")
def exchange_rates():
    base = (request.args.get("base") or "usd").lower()
    if not is_supported(base):
        raise InvalidRequest(f"Moeda nao suportada: {base.upper()}")
    return jsonify({"success": True, **get_rates(base)})


@bp.post("/convert-price")
def convert_price():
    req = parse(ConvertPriceRequest, request.get_json(silent=True))
    try:
        result = convert(req.amount, req.from_currency, req.to_currency)
    except CurrencyError as e:
        raise InvalidRequest(str(e))
    return jsonify({"success": True, **result})
