# tests/test_status.py
import pytest

from nexfy_app import repository
from nexfy_app.services.status import TERMINAL, can_transition


@pytest.mark.parametrize("old,new", [
    ("pending", "approved"),
    ("pending", "refused"),
    ("pending", "expired"),
    ("approved", "refunded"),
    ("approved", "chargeback"),
])
def test_allowed_transitions(old, new):
    assert can_transition(old, new)


@pytest.mark.parametrize("old,new", [
    ("approved", "pending"),
    ("refunded", "approved"),
    ("refused", "approved"),
    ("chargeback", "refunded"),
    ("pending", "refunded"),
    ("approved", "approved"),
])
def test_forbidden_transitions(old, new):
    assert not can_transition(old, new)


def test_terminal_states_have_no_exit():
    for status in TERMINAL:
        assert not any(can_transition(status, new) for new in ("pending", "approved", "refunded"))


def test_compare_and_set_only_wins_once(factory, db_session):
    tx = factory.transaction(factory.product())
    assert repository.compare_and_set_status(tx.id, "pending", "approved") is True
    assert repository.compare_and_set_status(tx.id, "pending", "refused") is False
    db_session.commit()
    db_session.refresh(tx)
    assert tx.status == "approved"
