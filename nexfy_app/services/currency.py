# nexfy_app/services/currency.py
# -*- coding: utf-8 -*-
"""
Moedas suportadas, conversão para menor unidade e câmbio.

As taxas vêm de uma API pública (sem chave) e ficam num ExchangeRateCache
com TTL, guardado em ``app.extensions["exchange_rates"]``. Se a API falhar,
usamos taxas aproximadas a partir do USD.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import requests
from flask import current_app

from ..gateways.base import ZERO_DECIMAL_CURRENCIES, to_minor_units  # noqa: F401  (reexport)

SUPPORTED_CURRENCIES = {
    "USD": {"symbol": "$", "name": "US Dollar"},
    "EUR": {"symbol": "€", "name": "Euro"},
    "GBP": {"symbol": "£", "name": "British Pound"},
    "CAD": {"symbol": "C$", "name": "Canadian Dollar"},
    "AUD": {"symbol": "A$", "name": "Australian Dollar"},
    "BRL": {"symbol": "R$", "name": "Brazilian Real"},
    "MXN": {"symbol": "MX$", "name": "Mexican Peso"},
    "JPY": {"symbol": "¥", "name": "Japanese Yen"},
    "CHF": {"symbol": "CHF", "name": "Swiss Franc"},
    "INR": {"symbol": "₹", "name": "Indian Rupee"},
}

FALLBACK_RATES_FROM_USD = {
    "usd": 1.0, "eur": 0.92, "gbp": 0.79, "cad": 1.36, "aud": 1.53,
    "brl": 4.97, "mxn": 17.15, "jpy": 148.5, "chf": 0.88, "inr": 83.1,
}


class CurrencyError(Exception):
    pass


def is_supported(code: str) -> bool:
    return (code or "").upper() in SUPPORTED_CURRENCIES


def is_zero_decimal(code: str) -> bool:
    return (code or "").upper() in ZERO_DECIMAL_CURRENCIES


def from_minor_units(value: int, currency: str) -> Decimal:
    if is_zero_decimal(currency):
        return Decimal(value)
    return (Decimal(value) / 100).quantize(Decimal("0.01"))


def round_for(amount: Decimal, currency: str) -> Decimal:
    exp = Decimal("1") if is_zero_decimal(currency) else Decimal("0.01")
    return Decimal(str(amount)).quantize(exp, rounding=ROUND_HALF_UP)


def format_money(amount, currency: str = "BRL") -> str:
    currency = (currency or "BRL").upper()
    value = round_for(Decimal(str(amount or 0)), currency)
    symbol = SUPPORTED_CURRENCIES.get(currency, {}).get("symbol", currency)
    text = f"{value:,}" if is_zero_decimal(currency) else f"{value:,.2f}"
    if currency == "BRL":
        # 1,234.56 -> 1.234,56
        text = text.replace(",", "_").replace(".", ",").replace("_", ".")
        return f"{symbol} {text}"
    return f"{symbol}{text}"


@dataclass
class _Entry:
    rates: dict
    fetched_at: float


class ExchangeRateCache:
    """Cache de taxas por moeda base, com expiração explícita."""

    def __init__(self, ttl: int = 3600, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, base: str) -> dict | None:
        with self._lock:
            entry = self._entries.get(base.lower())
            if entry and self._clock() - entry.fetched_at < self.ttl:
                return entry.rates
            return None

    def put(self, base: str, rates: dict) -> None:
        with self._lock:
            self._entries[base.lower()] = _Entry(rates=rates, fetched_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def init_currency(app) -> None:
    app.extensions["exchange_rates"] = ExchangeRateCache(ttl=int(app.config.get("EXCHANGE_RATES_TTL", 3600)))


def _cache() -> ExchangeRateCache:
    cache = current_app.extensions.get("exchange_rates")
    if cache is None:
        init_currency(current_app)
        cache = current_app.extensions["exchange_rates"]
    return cache


def fallback_rates(base: str) -> dict:
    base_rate = FALLBACK_RATES_FROM_USD.get(base.lower(), 1.0)
    return {code: rate / base_rate for code, rate in FALLBACK_RATES_FROM_USD.items()}


def get_rates(base: str = "usd") -> dict:
    """
    {"base": "USD", "rates": {...}, "cached": bool, "fallback": bool}
    """
    base = base.lower()
    cached = _cache().get(base)
    if cached is not None:
        return {"base": base.upper(), "rates": cached, "cached": True, "fallback": False}

    url = f"{current_app.config['EXCHANGE_API_URL'].rstrip('/')}/{base}.json"
    try:
        res = requests.get(url, timeout=float(current_app.config.get("GATEWAY_TIMEOUT", 15)))
        res.raise_for_status()
        rates = res.json().get(base)
        if not rates:
            raise CurrencyError("Resposta invalida da API de cambio")
    except (requests.RequestException, ValueError, CurrencyError) as e:
        current_app.logger.warning("Exchange rates error (%s); usando taxas de fallback", e)
        return {"base": base.upper(), "rates": fallback_rates(base), "cached": False, "fallback": True}

    _cache().put(base, rates)
    return {"base": base.upper(), "rates": rates, "cached": False, "fallback": False}


def get_rate(from_currency: str, to_currency: str) -> Decimal:
    if from_currency.upper() == to_currency.upper():
        return Decimal(1)
    rates = get_rates(from_currency)["rates"]
    rate = rates.get(to_currency.lower())
    if rate is None:
        rate = fallback_rates(from_currency).get(to_currency.lower())
    if rate is None:
        raise CurrencyError(f"Moeda nao suportada: {to_currency}")
    return Decimal(str(rate))


def convert(amount, from_currency: str, to_currency: str) -> dict:
    for code in (from_currency, to_currency):
        if not is_supported(code):
            raise CurrencyError(f"Moeda nao suportada: {code}")
    rate = get_rate(from_currency, to_currency)
    converted = round_for(Decimal(str(amount)) * rate, to_currency)
    return {
        "originalAmount": str(amount),
        "convertedAmount": str(converted),
        "fromCurrency": from_currency.upper(),
        "toCurrency": to_currency.upper(),
        "rate": float(rate),
    }
