# nexfy_app/gateways/efi.py
from __future__ import annotations

import time
import uuid
from decimal import Decimal
from typing import Any, Mapping

from .base import (
    DEFAULT_DESCRIPTION, GatewayAdapter, GatewayConfigError, GatewayCredentials,
    GatewayError, PaymentInput, PaymentResult, PaymentStatus, RefundResult,
    money_str, only_digits, parse_datetime, to_cents,
)

PIX_EXPIRATION_SECONDS = 3600


class EfiAdapter(GatewayAdapter):
    """
    Efí (antiga Gerencianet). API Pix autenticada por mTLS: o certificado do
    vendedor (PEM com chave privada) vai em ``cert=`` em toda chamada. Os
    webhooks chegam pelo mesmo canal mTLS, por isso não há assinatura no corpo.
    """
    name = "efi"
    hint = "Gateway Efi nao configurado corretamente. Contate o vendedor."
    supported_methods = ("pix", "credit_card")
    accepts_card_data = False  # payment_token gerado pelo JS da Efí
    pix_status_map = {
        "ATIVA": "pending",
        "CONCLUIDA": "approved",
        "REMOVIDA_PELO_USUARIO_RECEBEDOR": "cancelled",
        "REMOVIDA_PELO_PSP": "cancelled",
    }
    card_status_map = {
        "new": "pending",
        "waiting": "pending",
        "approved": "pending",
        "paid": "approved",
        "settled": "approved",
        "unpaid": "refused",
        "refunded": "refunded",
        "contested": "chargeback",
        "canceled": "cancelled",
    }

    def __init__(self, credentials: GatewayCredentials):
        if not (credentials.client_id and credentials.client_secret and credentials.certificate_path):
            raise GatewayConfigError("Efi: clientId, clientSecret e certificatePath obrigatorios")
        super().__init__(credentials)
        # token OAuth por URL base: {base: (token, expira_em)}
        self._tokens: dict[str, tuple[str, float]] = {}

    @property
    def display_name(self) -> str:
        return "Efi"

    @property
    def pix_base_url(self) -> str:
        if self.credentials.sandbox:
            return "https://pix-h.api.efipay.com.br"
        return "https://pix.api.efipay.com.br"

    @property
    def card_base_url(self) -> str:
        if self.credentials.sandbox:
            return "https://cobrancas-h.api.efipay.com.br"
        return "https://cobrancas.api.efipay.com.br"

    # ------------------------------------------------------------------ auth
    def _authenticate(self, base_url: str, path: str, mtls: bool) -> str:
        cached = self._tokens.get(base_url)
        if cached and time.monotonic() < cached[1]:
            return cached[0]

        kwargs: dict[str, Any] = {
            "json": {"grant_type": "client_credentials"},
            "auth": (self.credentials.client_id, self.credentials.client_secret),
        }
        if mtls:
            kwargs["cert"] = self.credentials.certificate_path
        data = self._request("POST", f"{base_url}{path}", **kwargs)
        token = data.get("access_token")
        if not token:
            raise GatewayError("Efi: falha na autenticacao", {"response": data})
        ttl = max(int(data.get("expires_in") or 3600) - 60, 0)
        self._tokens[base_url] = (token, time.monotonic() + ttl)
        return token

    def _pix(self, method: str, path: str, body: dict | None = None) -> dict:
        token = self._authenticate(self.pix_base_url, "/oauth/token", mtls=True)
        return self._request(
            method, f"{self.pix_base_url}{path}", json=body,
            headers={"Authorization": f"Bearer {token}"},
            cert=self.credentials.certificate_path,
        )

    def _card(self, method: str, path: str, body: dict | None = None) -> dict:
        token = self._authenticate(self.card_base_url, "/v1/authorize", mtls=False)
        return self._request(
            method, f"{self.card_base_url}{path}", json=body,
            headers={"Authorization": f"Bearer {token}"},
        )

    # ------------------------------------------------------------ contrato
    def create_payment(self, data: PaymentInput) -> PaymentResult:
        rejected = self.check_input(data)
        if rejected:
            return rejected
        if data.payment_method == "pix":
            return self._create_pix(data)
        return self._create_card(data)

    def _create_pix(self, data: PaymentInput) -> PaymentResult:
        body: dict[str, Any] = {
            "calendario": {"expiracao": PIX_EXPIRATION_SECONDS},
            "devedor": {"cpf": only_digits(data.customer.tax_id), "nome": data.customer.name},
            "valor": {"original": money_str(data.amount)},
            "chave": self.credentials.pix_key or "",
            "solicitacaoPagador": (data.description or DEFAULT_DESCRIPTION)[:140],
        }
        result = self._pix("POST", "/v2/cob", body)
        loc_id = (result.get("loc") or {}).get("id")
        if not loc_id or not result.get("txid"):
            return PaymentResult.failed(result.get("mensagem") or "Falha ao criar cobranca PIX", raw=result)

        qr = self._pix("GET", f"/v2/loc/{loc_id}/qrcode")
        return PaymentResult(
            success=True,
            gateway_payment_id=result["txid"],
            status="pending",
            pix_code=qr.get("qrcode") or result.get("pixCopiaECola"),
            pix_qr_code=qr.get("imagemQrcode"),
            raw=result,
        )

    def _create_card(self, data: PaymentInput) -> PaymentResult:
        customer: dict[str, Any] = {
            "name": data.customer.name,
            "email": data.customer.email,
            "cpf": only_digits(data.customer.tax_id),
        }
        phone = only_digits(data.customer.phone)
        if phone:
            customer["phone_number"] = phone
        body = {
            "items": [{
                "name": data.description or DEFAULT_DESCRIPTION,
                "value": to_cents(data.amount),
                "amount": 1,
            }],
            "payment": {
                "credit_card": {
                    "installments": data.installments or 1,
                    "payment_token": data.card_token,
                    "customer": customer,
                },
            },
        }
        if data.external_ref:
            body["metadata"] = {"custom_id": data.external_ref}

        result = self._card("POST", "/v1/charge/one-step", body)
        if result.get("code") != 200:
            return PaymentResult.failed(
                result.get("error_description") or result.get("message") or "Erro Efi", raw=result
            )
        charge = result.get("data") or {}
        status = self.collapse(self.card_status_map.get(charge.get("status"), "pending"))
        return PaymentResult(
            success=status != "refused",
            gateway_payment_id=str(charge.get("charge_id")),
            status=status,
            card_last_four=data.card.last_four if data.card else None,
            error=(charge.get("refusal") or {}).get("reason") if status == "refused" else None,
            raw=result,
        )

    def get_status(self, payment_id: str) -> PaymentStatus:
        # charge_id de cartão é numérico; txid do Pix é alfanumérico
        if payment_id.isdigit():
            result = self._card("GET", f"/v1/charge/{payment_id}")
            charge = result.get("data") or {}
            return PaymentStatus(
                gateway_payment_id=payment_id,
                status=self.card_status_map.get(charge.get("status"), "pending"),
                raw=result,
            )

        result = self._pix("GET", f"/v2/cob/{payment_id}")
        status = self.pix_status_map.get(result.get("status"), "pending")
        pix = (result.get("pix") or [{}])[0]
        if status == "approved" and pix.get("devolucoes"):
            status = "refunded"
        return PaymentStatus(
            gateway_payment_id=payment_id,
            status=status,
            paid_at=parse_datetime(pix.get("horario")),
            raw=result,
        )

    def refund(self, payment_id: str, amount: Decimal | None = None) -> RefundResult:
        if payment_id.isdigit():
            result = self._card("POST", f"/v1/charge/card/{payment_id}/refund",
                                {"amount": to_cents(amount)} if amount else {})
            if result.get("code") == 200:
                return RefundResult(success=True, refund_id=payment_id, raw=result)
            return RefundResult(success=False, error=result.get("error_description") or "Falha no reembolso", raw=result)

        # devolução é feita sobre o e2eId do Pix recebido
        cob = self._pix("GET", f"/v2/cob/{payment_id}")
        pix = (cob.get("pix") or [{}])[0]
        e2e_id = pix.get("endToEndId")
        if not e2e_id:
            return RefundResult(success=False, error="Pix ainda nao recebido", raw=cob)
        value = money_str(amount) if amount else pix.get("valor")
        refund_id = uuid.uuid4().hex
        result = self._pix("PUT", f"/v2/pix/{e2e_id}/devolucao/{refund_id}", {"valor": value})
        if result.get("status") in ("EM_PROCESSAMENTO", "DEVOLVIDO"):
            return RefundResult(success=True, refund_id=result.get("rtrId") or refund_id, raw=result)
        return RefundResult(success=False, error=result.get("mensagem") or "Falha no reembolso", raw=result)

    def verify_webhook(self, payload, signature, headers: Mapping[str, str] | None = None) -> bool:
        # autenticidade garantida pelo handshake mTLS, não pelo corpo
        return True
