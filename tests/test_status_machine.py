"""Transições de status das mensagens."""
from types import SimpleNamespace

import pytest

from atendimento_hub.domain.errors import InvalidStatusTransition
from atendimento_hub.domain.types import MessageStatus as S, TERMINAL_STATUSES, can_transition, transition


@pytest.mark.parametrize("current, target", [
    (S.PENDING, S.SENT),
    (S.PENDING, S.FAILED),
    (S.PENDING, S.FAILED_PERMANENTLY),
    (S.FAILED, S.PENDING),
    (S.FAILED, S.FAILED_PERMANENTLY),
    (None, S.PENDING),
    (None, S.RECEIVED),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current, target", [
    (S.PENDING, S.RECEIVED),
    (S.FAILED, S.SENT),
    (None, S.SENT),
    (None, S.FAILED),
])
def test_forbidden_transitions(current, target):
    assert not can_transition(current, target)


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_states_never_move(terminal):
    for target in S:
        assert not can_transition(terminal, target)


def test_transition_accepts_string_status_and_updates_object():
    m = SimpleNamespace(status="pending")
    transition(m, S.FAILED)
    assert m.status == "failed"
    transition(m, S.PENDING)
    assert m.status == "pending"


def test_transition_rejects_leaving_terminal_state():
    m = SimpleNamespace(status="sent")
    with pytest.raises(InvalidStatusTransition) as exc:
        transition(m, S.FAILED)
    assert "sent -> failed" in str(exc.value)
    assert m.status == "sent"
