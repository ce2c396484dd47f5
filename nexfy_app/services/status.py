# nexfy_app/services/status.py
"""Máquina de estados da Transaction."""
from __future__ import annotations

TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"approved", "refused", "cancelled", "expired"}),
    "approved": frozenset({"refunded", "chargeback"}),
}

TERMINAL = frozenset({"refused", "refunded", "chargeback", "cancelled", "expired"})

# evento enviado aos assinantes (webhooks do vendedor, UTMify) por status
EVENTS = {
    "approved": "payment.approved",
    "refused": "payment.refused",
    "refunded": "payment.refunded",
    "chargeback": "payment.chargeback",
}


def can_transition(old: str, new: str) -> bool:
    return new in TRANSITIONS.get(old, ())
