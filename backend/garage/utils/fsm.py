from __future__ import annotations
"""Finite state machine utility for enforcing allowed status transitions.

Used by the repair item lifecycle (and the derived order status).
Usage:
    from garage.utils.fsm import TransitionValidator
    ITEM_FSM = TransitionValidator({
        'pending': {'in_progress'},
        'in_progress': {'completed'},
        'completed': set(),
    }, field_name='item status')
    ITEM_FSM.assert_can_transition(item.status, 'in_progress')

Raises ValidationError (400) if invalid.
"""
from typing import Dict, Set
from garage.errors import ValidationError

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise ValidationError(description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def assert_in(self, current: str, *allowed: str, action: str):
        """Guard for commands that are not transitions but only legal in some states."""
        if current not in allowed:
            raise ValidationError(description=f"Cannot {action} while {self.field_name} is {current}")
        return True

__all__ = ['TransitionValidator']
