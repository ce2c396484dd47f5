# nexfy_app/errors.py
# -*- coding: utf-8 -*-
"""
Exceções de domínio do checkout. Cada uma carrega o status HTTP e a mensagem
que pode ser mostrada ao comprador; a causa real fica só no log.
"""
from __future__ import annotations

from flask import jsonify


class CheckoutError(Exception):
    status_code = 500
    message = "Erro interno ao processar pagamento"

    def __init__(self, message: str | None = None, details=None, code: str | None = None):
        self.message = message or self.message
        self.details = details
        self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        if self.code:
            body["code"] = self.code
        return body


class InvalidRequest(CheckoutError):
    """Payload malformado ou referência inválida (cupom, oferta, upsell)."""
    status_code = 400
    message = "Dados invalidos"


class Unauthorized(CheckoutError):
    status_code = 401
    message = "Nao autenticado"


class Forbidden(CheckoutError):
    status_code = 403
    message = "Sem permissao"


class NotFound(CheckoutError):
    status_code = 404
    message = "Nao encontrado"


class MethodDisabled(CheckoutError):
    status_code = 400


class PaymentRequired(CheckoutError):
    """Cobrança off-session que exige ação do comprador (3-D Secure etc.)."""
    status_code = 402
    message = "Pagamento nao foi aprovado. Tente novamente."


class FraudRejected(CheckoutError):
    # mensagem propositalmente vaga
    status_code = 400
    message = "Pagamento nao autorizado. Verifique seus dados."


class GatewayMisconfigured(CheckoutError):
    status_code = 500
    message = "Gateway de pagamento nao configurado. Contate o vendedor."


class PaymentFailed(CheckoutError):
    status_code = 500
    message = "Erro interno ao processar pagamento"


def register_error_handlers(app):
    @app.errorhandler(CheckoutError)
    def _checkout_error(e: CheckoutError):
        return jsonify(e.to_dict()), e.status_code


__all__ = [
    "CheckoutError",
    "InvalidRequest",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "MethodDisabled",
    "PaymentRequired",
    "FraudRejected",
    "GatewayMisconfigured",
    "PaymentFailed",
    "register_error_handlers",
]
