# nexfy_app/schemas.py
"""Modelos de entrada da API de pagamentos (pydantic v2)."""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidRequest

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_cpf(value: str) -> bool:
    digits = re.sub(r"\D", "", value or "")
    if len(digits) != 11 or digits == digits[0] * 11:
        return False
    for size in (9, 10):
        total = sum(int(d) * (size + 1 - i) for i, d in enumerate(digits[:size]))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != int(digits[size]):
            return False
    return True


class _Schema(BaseModel):
    # front envia camelCase; testes/CLI podem usar snake_case
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)


class CustomerIn(_Schema):
    name: str = Field(min_length=3, max_length=255)
    email: str = Field(max_length=255)
    tax_id: str = Field(default="", alias="cpf")
    phone: str | None = Field(default=None, max_length=20)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        if not EMAIL_RE.match(v):
            raise ValueError("Email invalido")
        return v.lower()

    @field_validator("tax_id")
    @classmethod
    def _tax_id(cls, v: str) -> str:
        digits = re.sub(r"\D", "", v or "")
        if not digits:
            return ""
        # CNPJ passa direto; CPF precisa do dígito verificador
        if len(digits) == 14:
            return digits
        if not is_valid_cpf(digits):
            raise ValueError("CPF invalido")
        return digits


class CardIn(_Schema):
    number: str = Field(min_length=13, max_length=23)
    holder_name: str = Field(min_length=3, alias="holderName")
    exp_month: str = Field(min_length=2, max_length=2, alias="expMonth")
    exp_year: str = Field(min_length=2, max_length=4, alias="expYear")
    cvv: str = Field(min_length=3, max_length=4)


class CreatePaymentRequest(_Schema):
    product_hash: str = Field(min_length=1, alias="productHash")
    offer_hash: str | None = Field(default=None, alias="offerHash")
    payment_method: Literal["pix", "credit_card", "boleto"] = Field(alias="paymentMethod")
    customer: CustomerIn
    card: CardIn | None = None
    card_token: str | None = Field(default=None, alias="cardToken")
    installments: int = Field(default=1, ge=1, le=12)
    coupon_code: str | None = Field(default=None, alias="couponCode")
    order_bump_ids: list[int] = Field(default_factory=list, alias="orderBumpIds")
    utm_source: str | None = Field(default=None, max_length=255, alias="utmSource")
    utm_medium: str | None = Field(default=None, max_length=255, alias="utmMedium")
    utm_campaign: str | None = Field(default=None, max_length=255, alias="utmCampaign")
    utm_content: str | None = Field(default=None, max_length=255, alias="utmContent")
    utm_term: str | None = Field(default=None, max_length=255, alias="utmTerm")

    @field_validator("coupon_code")
    @classmethod
    def _coupon(cls, v: str | None) -> str | None:
        return v.upper() if v else None


class RefundRequest(_Schema):
    transaction_id: int = Field(alias="transactionId")
    amount: Decimal | None = Field(default=None, gt=0)
    reason: str | None = Field(default=None, max_length=500)


class UpsellRequest(_Schema):
    transaction_id: int = Field(alias="transactionId")
    upsell_id: int = Field(alias="upsellId")


class CouponValidateRequest(_Schema):
    code: str = Field(min_length=1)
    product_hash: str = Field(min_length=1, alias="productHash")

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class ConvertPriceRequest(_Schema):
    amount: Decimal = Field(ge=0)
    from_currency: str = Field(alias="fromCurrency", min_length=3, max_length=3)
    to_currency: str = Field(alias="toCurrency", min_length=3, max_length=3)

    @field_validator("from_currency", "to_currency")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


def parse(schema: type[BaseModel], payload) -> BaseModel:
    """Valida o corpo da requisição; erro vira InvalidRequest (400) com detalhes."""
    if not isinstance(payload, dict):
        raise InvalidRequest("Dados invalidos")
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidRequest("Dados invalidos", details=details) from e
