# nexfy_app/repository.py
# -*- coding: utf-8 -*-
"""
Acesso a dados do núcleo de pagamentos. Serviços e gateways não montam
consultas: tudo passa por aqui (busca por id, por chave única, inserção e
atualizações condicionais).
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable

import sqlalchemy as sa

from .extensions import db
from .models import (
    Coupon, Entitlement, GatewayCredential, OrderBump, Product, ProductOffer,
    Refund, SellerWebhook, Transaction, Upsell, UpsellPurchase, User,
    UtmifyIntegration, WebhookLog,
)


def add(obj, flush: bool = True):
    db.session.add(obj)
    if flush:
        db.session.flush()
    return obj


def commit() -> None:
    db.session.commit()


def rollback() -> None:
    db.session.rollback()


# ---------------------------------------------------------------- catálogo
def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def get_active_product_by_hash(product_hash: str) -> Product | None:
    return Product.query.filter_by(hash=product_hash, is_active=True).first()


def get_active_offer(product_id: int, offer_hash: str) -> ProductOffer | None:
    return ProductOffer.query.filter_by(product_id=product_id, hash=offer_hash, is_active=True).first()


def get_active_order_bumps(product_id: int, ids: Iterable[int]) -> list[OrderBump]:
    ids = list(set(ids or []))
    if not ids:
        return []
    return (OrderBump.query
            .filter(OrderBump.product_id == product_id,
                    OrderBump.is_active.is_(True),
                    OrderBump.id.in_(ids))
            .order_by(OrderBump.id)
            .all())


def get_upsell(upsell_id: int) -> Upsell | None:
    return db.session.get(Upsell, upsell_id)


def find_upsell_purchase(transaction_id: int, upsell_id: int) -> UpsellPurchase | None:
    return UpsellPurchase.query.filter_by(transaction_id=transaction_id, upsell_id=upsell_id).first()


# ------------------------------------------------------------------ cupons
def find_coupon(seller_id: int, code: str) -> Coupon | None:
    return (Coupon.query
            .filter(Coupon.user_id == seller_id,
                    sa.func.upper(Coupon.code) == (code or "").upper())
            .first())


def increment_coupon_usage(coupon_id: int) -> bool:
    """Incremento atômico e condicionado ao limite; False = cupom esgotado."""
    stmt = (
        sa.update(Coupon)
        .where(Coupon.id == coupon_id,
               sa.or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses))
        .values(current_uses=Coupon.current_uses + 1)
        .execution_options(synchronize_session="fetch")
    )
    return db.session.execute(stmt).rowcount == 1


def release_coupon_usage(coupon_id: int) -> None:
    db.session.execute(
        sa.update(Coupon)
        .where(Coupon.id == coupon_id, Coupon.current_uses > 0)
        .values(current_uses=Coupon.current_uses - 1)
        .execution_options(synchronize_session="fetch")
    )


# ------------------------------------------------------------ transações
def get_transaction(transaction_id: int, lock: bool = False) -> Transaction | None:
    q = Transaction.query.filter_by(id=transaction_id)
    if lock:
        q = q.with_for_update().populate_existing()
    return q.first()


def find_transaction_by_gateway_id(gateway: str, gateway_payment_id: str,
                                   lock: bool = False) -> Transaction | None:
    q = Transaction.query.filter_by(gateway=gateway, gateway_payment_id=str(gateway_payment_id))
    if lock:
        q = q.with_for_update().populate_existing()
    return q.first()


def update_transaction(transaction_id: int, **values) -> None:
    values["updated_at"] = datetime.utcnow()
    db.session.execute(
        sa.update(Transaction)
        .where(Transaction.id == transaction_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )


def compare_and_set_status(transaction_id: int, expected: str, new: str, **values) -> bool:
    """
    ``UPDATE transactions SET status=:new ... WHERE id=:id AND status=:expected``.
    Só quem vence esta escrita executa os efeitos colaterais da transição.
    """
    values.update(status=new, updated_at=datetime.utcnow())
    stmt = (
        sa.update(Transaction)
        .where(Transaction.id == transaction_id, Transaction.status == expected)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return db.session.execute(stmt).rowcount == 1


# -------------------------------------------------------------- reembolso
def list_refunds(transaction_id: int) -> list[Refund]:
    return Refund.query.filter_by(transaction_id=transaction_id).order_by(Refund.id).all()


# ----------------------------------------------------------- liberações
def find_user_by_email(email: str) -> User | None:
    return User.query.filter(sa.func.lower(User.email) == (email or "").lower()).first()


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def get_entitlement_for_transaction(transaction_id: int) -> Entitlement | None:
    return Entitlement.query.filter_by(transaction_id=transaction_id).first()


def deactivate_entitlements(transaction_id: int) -> int:
    stmt = (
        sa.update(Entitlement)
        .where(Entitlement.transaction_id == transaction_id, Entitlement.is_active.is_(True))
        .values(is_active=False, revoked_at=datetime.utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return db.session.execute(stmt).rowcount


# ------------------------------------------------------------ integrações
def get_gateway_credential(user_id: int, provider: str) -> GatewayCredential | None:
    return GatewayCredential.query.filter_by(user_id=user_id, provider=provider).first()


def list_seller_webhooks(user_id: int) -> list[SellerWebhook]:
    return SellerWebhook.query.filter_by(user_id=user_id, is_active=True).all()


def get_utmify_integration(user_id: int) -> UtmifyIntegration | None:
    return UtmifyIntegration.query.filter_by(user_id=user_id, is_active=True).first()


# ---------------------------------------------------------- webhook logs
def create_webhook_log(gateway: str, payload: str, headers: dict) -> WebhookLog:
    log = WebhookLog(gateway=gateway, payload=payload, headers=headers)
    db.session.add(log)
    db.session.commit()
    return log


def get_webhook_log(log_id: int) -> WebhookLog | None:
    return db.session.get(WebhookLog, log_id)


def finish_webhook_log(log_id: int, status_code: int, response: str) -> None:
    """Anexa o desfecho; o payload registrado nunca é alterado."""
    db.session.execute(
        sa.update(WebhookLog)
        .where(WebhookLog.id == log_id)
        .values(
            status_code=status_code,
            response=(response or "")[:2000],
            processed_at=datetime.utcnow(),
            event_type="processed" if status_code == 200 else "error",
        )
        .execution_options(synchronize_session="fetch")
    )
    db.session.commit()
