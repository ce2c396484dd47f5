# nexfy_app/services/pricing.py
# -*- coding: utf-8 -*-
"""
Cálculo do valor cobrado, sempre no servidor:
total = max(0, preço base - desconto + order bumps).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from .. import repository

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class CouponError(Exception):
    """Cupom não aplicável; a mensagem vai para o comprador."""


def q(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class Quote:
    base_price: Decimal
    bumps_total: Decimal = ZERO
    discount: Decimal = ZERO
    offer_id: int | None = None
    coupon_id: int | None = None
    bump_ids: list[int] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return compute_total(self.base_price, self.discount, self.bumps_total)


def resolve_price(product, offer_hash: str | None):
    """Oferta ativa do produto substitui o preço base; inválida cai no preço base."""
    if offer_hash:
        offer = repository.get_active_offer(product.id, offer_hash)
        if offer:
            return q(offer.price), offer.id
    return q(product.price), None


def sum_order_bumps(product, bump_ids: Iterable[int]):
    bumps = repository.get_active_order_bumps(product.id, bump_ids)
    return q(sum((Decimal(str(b.price)) for b in bumps), ZERO)), [b.id for b in bumps]


def validate_coupon(product, code: str, now: datetime | None = None):
    now = now or datetime.utcnow()
    coupon = repository.find_coupon(product.user_id, code)
    if not coupon or not coupon.is_active:
        raise CouponError("Cupom invalido")
    if coupon.valid_from and coupon.valid_from > now:
        raise CouponError("Cupom ainda nao esta ativo")
    if coupon.valid_until and coupon.valid_until < now:
        raise CouponError("Cupom expirado")
    if coupon.max_uses is not None and (coupon.current_uses or 0) >= coupon.max_uses:
        raise CouponError("Cupom esgotado")
    if coupon.product_id and coupon.product_id != product.id:
        raise CouponError("Cupom nao valido para este produto")
    return coupon


def compute_discount(coupon_type: str, value, subtotal) -> Decimal:
    """Desconto limitado a [0, subtotal]; percentual limitado a 100%."""
    subtotal = q(subtotal)
    value = Decimal(str(value or 0))
    if coupon_type == "percentage":
        pct = min(max(value, Decimal(0)), Decimal(100))
        discount = subtotal * pct / Decimal(100)
    else:
        discount = max(value, Decimal(0))
    return min(q(discount), subtotal)


def compute_total(base_price, discount, bumps_total) -> Decimal:
    return max(ZERO, q(base_price) - q(discount) + q(bumps_total))


def quote(product, offer_hash: str | None = None, bump_ids: Iterable[int] = (),
          coupon_code: str | None = None, now: datetime | None = None) -> Quote:
    """Monta o orçamento completo. Cupom inválido levanta CouponError."""
    base, offer_id = resolve_price(product, offer_hash)
    bumps_total, applied_bumps = sum_order_bumps(product, bump_ids)
    result = Quote(base_price=base, bumps_total=bumps_total, offer_id=offer_id, bump_ids=applied_bumps)
    if coupon_code:
        coupon = validate_coupon(product, coupon_code, now=now)
        result.discount = compute_discount(coupon.type, coupon.value, base)
        result.coupon_id = coupon.id
    return result
