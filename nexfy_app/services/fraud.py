# nexfy_app/services/fraud.py
# -*- coding: utf-8 -*-
"""
Triagem antifraude antes de qualquer cobrança.

Contrato: ``screen(buyer, amount, method) -> FraudVerdict``. O comprador
nunca vê score nem motivo; o checkout responde só "nao autorizado".
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

import requests
from flask import current_app

from ..gateways import Customer
from ..schemas import is_valid_cpf

REJECT_SCORE = 70
PIX_HIGH_AMOUNT = Decimal("5000")

DISPOSABLE_DOMAINS = frozenset({
    "tempmail.com", "guerrillamail.com", "mailinator.com", "throwaway.email",
    "yopmail.com", "sharklasers.com", "temp-mail.org", "fakeinbox.com",
    "10minutemail.com", "trashmail.com", "getnada.com", "dispostable.com",
})


@dataclass
class FraudVerdict:
    approved: bool
    score: int
    reason: str | None = None
    provider: str = "internal"


class InternalFraudScreen:
    provider = "internal"

    def screen(self, buyer: Customer, amount, method: str) -> FraudVerdict:
        score = 0
        reasons: list[str] = []

        tax_digits = re.sub(r"\D", "", buyer.tax_id or "")
        if tax_digits and _malformed_tax_id(tax_digits):
            score += 80
            reasons.append("CPF/CNPJ invalido ou com digitos repetidos")

        domain = (buyer.email or "").rpartition("@")[2].lower()
        if domain in DISPOSABLE_DOMAINS:
            score += 40
            reasons.append("Email descartavel")

        phone_digits = re.sub(r"\D", "", buyer.phone or "")
        if 0 < len(phone_digits) < 10:
            score += 20
            reasons.append("Telefone invalido")

        if method == "pix" and Decimal(str(amount)) > PIX_HIGH_AMOUNT:
            score += 15
            reasons.append("PIX com valor alto")

        return FraudVerdict(
            approved=score < REJECT_SCORE,
            score=score,
            reason="; ".join(reasons) or None,
            provider=self.provider,
        )


def _malformed_tax_id(digits: str) -> bool:
    if digits == digits[0] * len(digits):
        return True
    if len(digits) == 11:
        return not is_valid_cpf(digits)
    return len(digits) != 14


class ClearSaleScreen:
    """Score externo (cartão). Falha na consulta não bloqueia a venda."""
    provider = "clearsale"

    def __init__(self, api_key: str, api_url: str, timeout: float = 15):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def screen(self, buyer: Customer, amount, method: str) -> FraudVerdict:
        body = {
            "email": buyer.email,
            "totalOrderValue": float(Decimal(str(amount))),
            "paymentType": method,
            "billingData": {
                "cpf": re.sub(r"\D", "", buyer.tax_id or ""),
                "phoneNumber": buyer.phone or "",
                "name": buyer.name,
            },
        }
        try:
            res = requests.post(
                f"{self.api_url}/orders",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            res.raise_for_status()
            data = res.json()
        except (requests.RequestException, ValueError):
            current_app.logger.exception("ClearSale error")
            return FraudVerdict(approved=True, score=0, reason="Erro na consulta ClearSale", provider=self.provider)

        score = int(data.get("score") or 0)
        status = data.get("status")
        reason = {"APA": "Aprovado", "RPR": "Reprovado"}.get(status, status)
        return FraudVerdict(approved=score < REJECT_SCORE, score=score, reason=reason, provider=self.provider)


class CompositeFraudScreen:
    """Reprova se qualquer membro reprovar; reporta o maior score."""

    def __init__(self, screens):
        self.screens = list(screens)

    def screen(self, buyer: Customer, amount, method: str) -> FraudVerdict:
        verdicts = [s.screen(buyer, amount, method) for s in self.screens]
        rejected = [v for v in verdicts if not v.approved]
        worst = max(rejected or verdicts, key=lambda v: v.score)
        return FraudVerdict(
            approved=not rejected,
            score=worst.score,
            reason=worst.reason,
            provider=worst.provider,
        )


def get_fraud_screen():
    cfg = current_app.config
    screens = [InternalFraudScreen()]
    if cfg.get("CLEARSALE_API_KEY"):
        screens.append(ClearSaleScreen(
            cfg["CLEARSALE_API_KEY"],
            cfg.get("CLEARSALE_API_URL", "https://api.clearsale.com.br/v1"),
            timeout=float(cfg.get("GATEWAY_TIMEOUT", 15)),
        ))
    if len(screens) == 1:
        return screens[0]
    return CompositeFraudScreen(screens)
