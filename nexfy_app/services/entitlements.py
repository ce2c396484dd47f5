# nexfy_app/services/entitlements.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import secrets

from flask import current_app
from sqlalchemy.exc import IntegrityError

from .. import repository
from ..extensions import db
from ..models import Entitlement, User
from .notifications import send_welcome_email


def _find_or_create_buyer(transaction) -> User:
    user = repository.find_user_by_email(transaction.customer_email)
    if user:
        return user
    user = User(
        name=transaction.customer_name or "Cliente",
        email=transaction.customer_email.lower(),
        role="customer",
        phone=transaction.customer_phone,
        tax_id=transaction.customer_tax_id,
    )
    # senha aleatória inutilizável; o comprador define a dele pelo "esqueci a senha"
    user.set_password(secrets.token_urlsafe(32))
    repository.add(user)
    return user


def grant_access(transaction, notify: bool = True) -> Entitlement | None:
    """
    Libera o produto para o comprador da transação aprovada. Idempotente:
    se já existe liberação para a transação, devolve a existente sem reenviar
    e-mail. UNIQUE(transaction_id) cobre a corrida entre dois processos.

    A linha da transação fica travada até o commit e só é liberada enquanto
    o status for ``approved``; um reembolso concorrente espera ou vence antes.
    """
    tx_id = transaction.id
    locked = repository.get_transaction(tx_id, lock=True)
    if not locked or locked.status != "approved":
        db.session.rollback()
        current_app.logger.warning(
            "Access not granted for transaction %s (status %s)", tx_id, locked.status if locked else None
        )
        return None
    transaction = locked

    existing = repository.get_entitlement_for_transaction(tx_id)
    if existing:
        db.session.commit()
        return existing

    try:
        user = _find_or_create_buyer(transaction)
        entitlement = repository.add(Entitlement(
            user_id=user.id,
            product_id=transaction.product_id,
            transaction_id=tx_id,
            is_active=True,
        ))
        transaction.user_id = user.id
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Entitlement already granted for transaction %s", tx_id)
        existing = repository.get_entitlement_for_transaction(tx_id)
        if existing:
            return existing
        raise

    if notify:
        try:
            send_welcome_email(transaction, transaction.product)
        except Exception:
            current_app.logger.exception("Welcome email error (tx %s)", tx_id)
    return entitlement


def revoke_access(transaction) -> int:
    """Desativa (não apaga) as liberações da transação. O chamador faz o commit."""
    count = repository.deactivate_entitlements(transaction.id)
    if count:
        current_app.logger.info("Revoked %s entitlement(s) for transaction %s", count, transaction.id)
    return count
