# nexfy_app/services/refunds.py
# -*- coding: utf-8 -*-
"""Reembolso pedido pelo vendedor (ou admin) a partir do painel."""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from .. import repository
from ..errors import Forbidden, GatewayMisconfigured, InvalidRequest, NotFound, PaymentFailed
from ..gateways import GatewayConfigError, GatewayError, UnsupportedGatewayError
from ..models import Refund
from .credentials import adapter_for
from .pricing import q
from .reconciler import on_transition


def request_refund(transaction_id: int, actor, amount=None, reason: str | None = None) -> dict:
    """
    Estorna no provedor e registra o Refund. Só transação ``approved`` pode ser
    estornada; o valor padrão é o total. A transição approved -> refunded é
    condicional, então o carimbo ``refunded_at`` acontece uma única vez.
    """
    tx = repository.get_transaction(transaction_id, lock=True)
    if not tx:
        raise NotFound("Transacao nao encontrada")
    product = tx.product
    if not (actor.is_platform_admin or product.user_id == actor.id):
        raise Forbidden("Sem permissao para reembolsar esta transacao")
    if tx.status != "approved":
        raise InvalidRequest("Somente transacoes aprovadas podem ser reembolsadas")
    if not tx.gateway_payment_id:
        raise InvalidRequest("Transacao sem referencia no gateway")

    full = q(tx.amount)
    value = q(amount) if amount is not None else full
    if value <= 0 or value > full:
        raise InvalidRequest("Valor de reembolso invalido")

    try:
        adapter = adapter_for(product, tx.gateway)
    except (GatewayConfigError, UnsupportedGatewayError) as e:
        current_app.logger.error("Refund tx %s: gateway %s unavailable: %s", tx.id, tx.gateway, e)
        raise GatewayMisconfigured()

    try:
        result = adapter.refund(tx.gateway_payment_id, None if value == full else value)
    except GatewayError as e:
        current_app.logger.exception("Refund tx %s failed on %s", tx.id, tx.gateway)
        repository.add(Refund(
            transaction_id=tx.id, amount=value, reason=reason, status="refused",
            error=str(e), requested_by=actor.id, processed_at=datetime.utcnow(),
        ))
        repository.commit()
        raise PaymentFailed("Falha ao processar reembolso")

    refund = repository.add(Refund(
        transaction_id=tx.id,
        amount=value,
        reason=reason,
        status="approved" if result.success else "refused",
        gateway_refund_id=result.refund_id,
        error=result.error,
        requested_by=actor.id,
        processed_at=datetime.utcnow(),
    ))
    won = False
    if result.success:
        won = repository.compare_and_set_status(tx.id, "approved", "refunded", refunded_at=datetime.utcnow())
    repository.commit()

    if won:
        on_transition(tx, "approved", "refunded", amount=value)
    elif not result.success:
        current_app.logger.warning("Refund refused for tx %s: %s", tx.id, result.error)

    return {
        "success": result.success,
        "refundId": refund.id,
        "amount": str(value),
        "status": refund.status,
        "error": result.error,
    }
