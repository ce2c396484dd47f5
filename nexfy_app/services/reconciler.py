# nexfy_app/services/reconciler.py
# -*- coding: utf-8 -*-
"""
Reconciliação de webhooks.

O corpo recebido é só um gatilho: o status oficial vem sempre de
``adapter.get_status``. A escrita do novo status é condicional
(compare-and-set) e só o vencedor executa os efeitos colaterais, então
entregas repetidas ou concorrentes não duplicam liberação nem e-mail.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from flask import current_app

from .. import repository
from ..extensions import db
from .credentials import adapter_for
from .entitlements import grant_access, revoke_access
from .forwarding import forward_event
from .notifications import send_refund_email
from .status import EVENTS, can_transition

SIGNATURE_HEADERS = ("x-signature", "stripe-signature", "x-webhook-signature")


@dataclass
class Outcome:
    status_code: int
    message: str


def extract_signature(headers: Mapping[str, str]) -> str:
    lowered = {k.lower(): v for k, v in (headers or {}).items()}
    for name in SIGNATURE_HEADERS:
        if lowered.get(name):
            return lowered[name]
    return ""


def extract_payment_id(gateway: str, payload) -> str | None:
    """Id do pagamento no provedor, conforme o formato de cada notificação."""
    if not isinstance(payload, dict):
        return None
    value = None
    if gateway == "mercadopago":
        value = (payload.get("data") or {}).get("id")
    elif gateway == "efi":
        pix = payload.get("pix") or []
        if pix and isinstance(pix[0], dict):
            value = pix[0].get("txid")
        value = value or payload.get("txid") or payload.get("charge_id")
    elif gateway == "pushinpay":
        value = payload.get("id") or payload.get("payment_id")
    elif gateway == "beehive":
        value = payload.get("payment_id") or payload.get("id")
    elif gateway == "hypercash":
        value = payload.get("transaction_id") or payload.get("id")
    elif gateway == "stripe":
        obj = (payload.get("data") or {}).get("object") or {}
        # eventos charge.* / charge.dispute.* apontam para o PaymentIntent
        if obj.get("object") not in (None, "payment_intent") and obj.get("payment_intent"):
            value = obj.get("payment_intent")
        else:
            value = obj.get("id")
    else:
        value = payload.get("id") or payload.get("payment_id")
    return str(value) if value not in (None, "") else None


def on_transition(transaction, old: str, new: str, amount=None) -> None:
    """Efeitos de uma transição já gravada. Falhas a jusante só vão para o log."""
    event = EVENTS.get(new)
    if new == "approved":
        grant_access(transaction)
    elif new in ("refunded", "chargeback"):
        revoke_access(transaction)
        db.session.commit()
        if new == "refunded":
            try:
                send_refund_email(transaction, transaction.product, amount)
            except Exception:
                current_app.logger.exception("Refund email error (tx %s)", transaction.id)
    current_app.logger.info("Transaction %s: %s -> %s", transaction.id, old, new)
    if event:
        forward_event(event, transaction)


def _card_on_file(gateway: str, payload, status) -> dict:
    values = {}
    customer_id = status.saved_customer_id
    payment_method_id = status.saved_payment_method_id
    if gateway == "stripe" and isinstance(payload, dict):
        obj = (payload.get("data") or {}).get("object") or {}
        customer_id = customer_id or obj.get("customer")
        pm = obj.get("payment_method")
        payment_method_id = payment_method_id or (pm if isinstance(pm, str) else None)
    if customer_id:
        values["saved_customer_id"] = customer_id
    if payment_method_id:
        values["saved_payment_method_id"] = payment_method_id
    return values


def _process(gateway: str, raw_body: str, signature: str, headers, verify: bool) -> Outcome:
    try:
        payload = json.loads(raw_body)
    except ValueError:
        return Outcome(400, "Payload invalido")

    payment_id = extract_payment_id(gateway, payload)
    if not payment_id:
        return Outcome(400, "Payment ID nao encontrado no payload")

    tx = repository.find_transaction_by_gateway_id(gateway, payment_id)
    if not tx:
        return Outcome(404, "Transacao nao encontrada")
    product = tx.product
    if not product:
        return Outcome(404, "Produto nao encontrado")

    adapter = adapter_for(product, gateway)
    if verify and not adapter.verify_webhook(raw_body, signature, headers):
        if not current_app.config.get("WEBHOOK_ALLOW_INVALID_SIGNATURE"):
            return Outcome(401, "Assinatura invalida")
        current_app.logger.warning("Invalid %s webhook signature accepted (tx %s)", gateway, tx.id)

    status = adapter.get_status(payment_id)

    # trava a linha até o commit; o status lido aqui é o que vale
    tx = repository.get_transaction(tx.id, lock=True)
    current, new = tx.status, status.status

    if current == new:
        if current == "approved" and not repository.get_entitlement_for_transaction(tx.id):
            # aprovação anterior sem liberação (falha a jusante): completa agora
            grant_access(tx)
            return Outcome(200, "Status ja atualizado (liberacao concluida)")
        if current in ("refunded", "chargeback") and revoke_access(tx):
            # estorno anterior com liberação ainda ativa: revoga agora
            db.session.commit()
            return Outcome(200, "Status ja atualizado (liberacao revogada)")
        db.session.commit()
        return Outcome(200, "Status ja atualizado")

    if not can_transition(current, new):
        db.session.commit()
        current_app.logger.warning("Ignored transition for tx %s: %s -> %s", tx.id, current, new)
        return Outcome(409, f"Transicao ignorada: {current} -> {new}")

    values = {}
    if new == "approved":
        values["paid_at"] = tx.paid_at or status.paid_at or datetime.utcnow()
        values.update(_card_on_file(gateway, payload, status))
    elif new == "refunded" and not tx.refunded_at:
        values["refunded_at"] = datetime.utcnow()

    won = repository.compare_and_set_status(tx.id, current, new, **values)
    db.session.commit()
    if not won:
        return Outcome(200, "Status ja atualizado")

    on_transition(tx, current, new)
    return Outcome(200, f"Status atualizado: {current} -> {new}")


def reconcile(gateway: str, raw_body: str, signature: str, log_id: int | None,
              headers: Mapping[str, str] | None = None, verify: bool = True) -> Outcome:
    """Processa uma notificação registrada e anexa o desfecho ao log."""
    try:
        outcome = _process(gateway, raw_body, signature, headers or {}, verify)
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Webhook processing error (%s, log %s)", gateway, log_id)
        outcome = Outcome(500, str(e))

    if log_id is not None:
        try:
            repository.finish_webhook_log(log_id, outcome.status_code, outcome.message)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Could not finish webhook log %s", log_id)
    return outcome


def replay(log_id: int) -> Outcome:
    """
    Reprocessa um payload já registrado (CLI ``flask replay-webhook``).
    O status vem do provedor, então a assinatura original não é reconferida;
    notificações recusadas por assinatura não são reprocessadas.
    """
    log = repository.get_webhook_log(log_id)
    if not log:
        return Outcome(404, "Log nao encontrado")
    if log.status_code == 401:
        return Outcome(409, "Log recusado por assinatura invalida; nao reprocessado")
    payload = log.payload if isinstance(log.payload, str) else json.dumps(log.payload)
    headers = log.headers or {}
    return reconcile(log.gateway, payload, extract_signature(headers), log.id, headers, verify=False)
