# nexfy_app/services/upsell.py
# -*- coding: utf-8 -*-
"""Upsell one-click: cobra o cartão salvo (Stripe) da compra original."""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from .. import repository
from ..errors import GatewayMisconfigured, InvalidRequest, NotFound, PaymentFailed, PaymentRequired
from ..gateways import GatewayConfigError, GatewayError
from ..models import Transaction, UpsellPurchase
from .credentials import adapter_for
from .entitlements import grant_access
from .forwarding import forward_event
from .pricing import q

REQUIRES_ACTION = ("requires_action", "requires_source_action")


def _already_purchased(existing: UpsellPurchase) -> InvalidRequest:
    return InvalidRequest(
        "Voce ja adquiriu esta oferta.",
        details={"redirectTo": f"/obrigado/{existing.upsell_transaction_id}"},
        code="ALREADY_PURCHASED",
    )


def purchase_upsell(transaction_id: int, upsell_id: int) -> dict:
    original = repository.get_transaction(transaction_id)
    if not original or original.status != "approved":
        raise NotFound("Transacao nao encontrada ou nao aprovada")
    if original.gateway != "stripe" or not (original.saved_customer_id and original.saved_payment_method_id):
        raise InvalidRequest("Nenhum cartao salvo para compra com um clique", code="NO_SAVED_CARD")

    existing = repository.find_upsell_purchase(original.id, upsell_id)
    if existing:
        raise _already_purchased(existing)

    upsell = repository.get_upsell(upsell_id)
    if not upsell or not upsell.is_active:
        raise NotFound("Oferta nao encontrada")
    if upsell.product_id != original.product_id:
        raise InvalidRequest("Oferta invalida para esta compra.", code="INVALID_UPSELL")

    try:
        adapter = adapter_for(original.product, "stripe")
    except GatewayConfigError as e:
        current_app.logger.error("Upsell %s: stripe misconfigured: %s", upsell.id, e)
        raise GatewayMisconfigured()

    amount = q(upsell.price)
    try:
        result = adapter.charge_saved_card(
            original.saved_customer_id,
            original.saved_payment_method_id,
            amount,
            original.currency or "BRL",
            description=upsell.title,
            metadata={"parent_transaction_id": original.id, "upsell_id": upsell.id},
        )
    except GatewayError:
        current_app.logger.exception("Upsell %s charge failed (tx %s)", upsell.id, original.id)
        raise PaymentFailed()

    if result.provider_status in REQUIRES_ACTION:
        raise PaymentRequired(
            "Seu banco requer autenticacao adicional. Por favor, faca a compra manualmente.",
            code="REQUIRES_ACTION",
        )
    if result.provider_status == "requires_payment_method":
        raise PaymentRequired("O metodo de pagamento salvo nao esta mais disponivel.",
                              code="PAYMENT_METHOD_INVALID")
    if result.provider_status != "succeeded":
        raise InvalidRequest("Pagamento nao foi aprovado. Tente novamente.", code="PAYMENT_FAILED")

    child = repository.add(Transaction(
        product_id=upsell.upsell_product_id,
        gateway="stripe",
        gateway_payment_id=result.gateway_payment_id,
        payment_method="credit_card",
        status="approved",
        amount=amount,
        discount=0,
        currency=original.currency or "BRL",
        customer_name=original.customer_name,
        customer_email=original.customer_email,
        customer_phone=original.customer_phone,
        customer_tax_id=original.customer_tax_id,
        card_last_four=result.card_last_four or original.card_last_four,
        card_brand=result.card_brand or original.card_brand,
        saved_customer_id=original.saved_customer_id,
        saved_payment_method_id=original.saved_payment_method_id,
        parent_transaction_id=original.id,
        paid_at=datetime.utcnow(),
    ))
    try:
        repository.add(UpsellPurchase(transaction_id=original.id, upsell_id=upsell.id,
                                      upsell_transaction_id=child.id))
        repository.commit()
    except IntegrityError:
        # outra requisição concluiu a mesma oferta; esta cobrança precisa de estorno manual
        repository.rollback()
        current_app.logger.error("Duplicate upsell charge %s for tx %s (upsell %s)",
                                 result.gateway_payment_id, original.id, upsell_id)
        existing = repository.find_upsell_purchase(original.id, upsell_id)
        if existing:
            raise _already_purchased(existing)
        raise

    grant_access(child)
    forward_event("payment.approved", child, isUpsell=True, upsellId=upsell.id)
    current_app.logger.info("Upsell %s purchased: tx %s -> %s", upsell.id, original.id, child.id)
    return {"success": True, "transactionId": child.id, "status": "succeeded"}
