# nexfy_app/services/checkout.py
# -*- coding: utf-8 -*-
"""
Orquestração do pagamento: produto -> preço -> antifraude -> transação
pendente -> cobrança no gateway -> persistência do resultado.

O valor cobrado é calculado aqui, nunca vindo do cliente. Toda transação
criada termina em um status definido (pending/approved/refused).
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from .. import repository
from ..errors import (
    FraudRejected, GatewayMisconfigured, InvalidRequest, MethodDisabled, NotFound, PaymentFailed,
)
from ..gateways import (
    CardData, Customer, GatewayConfigError, GatewayError, PaymentInput, UnsupportedGatewayError,
    gateway_class,
)
from ..models import Transaction
from ..schemas import CreatePaymentRequest
from . import pricing
from .credentials import adapter_for, gateway_name_for
from .fraud import get_fraud_screen
from .reconciler import on_transition

METHOD_DISABLED = {
    "pix": "PIX nao habilitado para este produto",
    "credit_card": "Cartao nao habilitado para este produto",
    "boleto": "Boleto nao habilitado para este produto",
}


def _customer(req: CreatePaymentRequest) -> Customer:
    c = req.customer
    return Customer(name=c.name, email=c.email, tax_id=c.tax_id, phone=c.phone)


def _card(req: CreatePaymentRequest) -> CardData | None:
    if not req.card:
        return None
    return CardData(
        number=req.card.number,
        holder_name=req.card.holder_name,
        exp_month=req.card.exp_month,
        exp_year=req.card.exp_year,
        cvv=req.card.cvv,
    )


def _adapter(product):
    name = gateway_name_for(product)
    try:
        return adapter_for(product, name)
    except UnsupportedGatewayError:
        current_app.logger.error("Product %s uses unsupported gateway %r", product.id, name)
        raise GatewayMisconfigured("Gateway de pagamento nao disponivel.")
    except GatewayConfigError as e:
        current_app.logger.error("Gateway %s misconfigured for seller %s: %s", name, product.user_id, e)
        raise GatewayMisconfigured(gateway_class(name).hint)


def _response(tx: Transaction, error: str | None = None) -> dict:
    return {
        "transactionId": tx.id,
        "status": tx.status,
        "amount": str(tx.amount),
        "currency": tx.currency,
        "pixCode": tx.pix_code,
        "pixQrCode": tx.pix_qr_code,
        "boletoUrl": tx.boleto_url,
        "boletoBarcode": tx.boleto_barcode,
        "error": error,
    }


def create_payment(req: CreatePaymentRequest, now: datetime | None = None) -> dict:
    product = repository.get_active_product_by_hash(req.product_hash)
    if not product:
        raise NotFound("Produto nao encontrado")
    if not product.method_enabled(req.payment_method):
        raise MethodDisabled(METHOD_DISABLED[req.payment_method])
    if req.payment_method == "credit_card" and req.installments > (product.max_installments or 1):
        raise InvalidRequest(f"Maximo de {product.max_installments} parcelas")

    try:
        quote = pricing.quote(product, req.offer_hash, req.order_bump_ids, req.coupon_code, now=now)
    except pricing.CouponError as e:
        raise InvalidRequest(str(e))
    amount = quote.total

    buyer = _customer(req)
    verdict = get_fraud_screen().screen(buyer, amount, req.payment_method)
    if not verdict.approved:
        current_app.logger.warning(
            "Fraud rejected (%s score=%s): %s %s", verdict.provider, verdict.score, buyer.email, verdict.reason,
        )
        raise FraudRejected()

    # credenciais resolvidas antes de gravar: gateway mal configurado não deixa transação órfã
    adapter = _adapter(product)

    tx = Transaction(
        product_id=product.id,
        offer_id=quote.offer_id,
        coupon_id=quote.coupon_id,
        gateway=adapter.name,
        payment_method=req.payment_method,
        status="pending",
        amount=amount,
        discount=quote.discount,
        currency=product.currency or "BRL",
        installments=req.installments if req.payment_method == "credit_card" else 1,
        customer_name=buyer.name,
        customer_email=buyer.email,
        customer_phone=buyer.phone,
        customer_tax_id=buyer.tax_id or None,
        extra={"order_bump_ids": quote.bump_ids} if quote.bump_ids else None,
        utm_source=req.utm_source,
        utm_medium=req.utm_medium,
        utm_campaign=req.utm_campaign,
        utm_content=req.utm_content,
        utm_term=req.utm_term,
    )
    repository.add(tx)
    # reserva o uso do cupom junto com a transação; devolvido se a cobrança falhar
    if quote.coupon_id and not repository.increment_coupon_usage(quote.coupon_id):
        repository.rollback()
        raise InvalidRequest("Cupom esgotado")
    repository.commit()

    payment = PaymentInput(
        amount=amount,
        payment_method=req.payment_method,
        customer=buyer,
        currency=tx.currency,
        card=_card(req),
        card_token=req.card_token,
        installments=tx.installments,
        description=product.name,
        external_ref=str(tx.id),
        metadata={"transaction_id": tx.id, "product_id": product.id},
    )
    tx_id = tx.id
    try:
        result = adapter.create_payment(payment)
    except GatewayError:
        current_app.logger.exception("Gateway %s failed creating payment for tx %s", adapter.name, tx_id)
        _abandon(tx_id, quote.coupon_id)
        raise PaymentFailed()
    except Exception:
        current_app.logger.exception("Unexpected error from %s creating payment for tx %s", adapter.name, tx_id)
        _abandon(tx_id, quote.coupon_id)
        raise PaymentFailed()

    try:
        won, status = _store_result(tx_id, result, payment, quote.coupon_id)
    except Exception:
        # o provedor pode ter cobrado: o id fica no log para conciliação manual
        current_app.logger.exception("Could not store %s result %s for tx %s",
                                     adapter.name, result.gateway_payment_id, tx_id)
        _abandon(tx_id, quote.coupon_id)
        raise PaymentFailed()

    if result.error:
        current_app.logger.info("Payment tx %s %s: %s", tx_id, status, result.error)
    else:
        current_app.logger.info("Payment tx %s created on %s (%s)", tx_id, adapter.name, status)

    if won:
        # aprovação síncrona (cartão) dispara os mesmos efeitos do webhook
        on_transition(tx, "pending", status)
    return _response(tx, result.error)


def _store_result(tx_id: int, result, payment: PaymentInput, coupon_id: int | None) -> tuple[bool, str]:
    values = {
        "pix_code": result.pix_code,
        "pix_qr_code": result.pix_qr_code,
        "boleto_url": result.boleto_url,
        "boleto_barcode": result.boleto_barcode,
        "card_last_four": result.card_last_four or (payment.card.last_four if payment.card else None),
        "card_brand": result.card_brand,
        "saved_customer_id": result.saved_customer_id,
        "saved_payment_method_id": result.saved_payment_method_id,
    }
    if result.gateway_payment_id:
        values["gateway_payment_id"] = str(result.gateway_payment_id)
    values = {k: v for k, v in values.items() if v is not None}

    status = result.status if result.status in ("approved", "refused") else "pending"
    won = False
    if status == "pending":
        repository.update_transaction(tx_id, **values)
    else:
        if status == "approved":
            values["paid_at"] = datetime.utcnow()
        won = repository.compare_and_set_status(tx_id, "pending", status, **values)
        if status == "refused" and coupon_id:
            repository.release_coupon_usage(coupon_id)
    repository.commit()
    return won, status


def _abandon(tx_id: int, coupon_id: int | None) -> None:
    """Falha sem resposta utilizável do provedor: recusa a transação e devolve o cupom."""
    repository.rollback()
    if repository.compare_and_set_status(tx_id, "pending", "refused") and coupon_id:
        repository.release_coupon_usage(coupon_id)
    repository.commit()
