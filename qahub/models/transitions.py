"""
Shared transition-table check used by every state machine.

A transition table maps each state to the frozenset of states reachable
from it in one step. States missing from the table have no exits.
"""

from qahub.core.exceptions import InvalidTransitionError


def next_states(table: dict, current) -> frozenset:
    return table.get(current, frozenset())


def is_valid_transition(table: dict, current, target) -> bool:
    return target in next_states(table, current)


def check_transition(entity: str, table: dict, current, target, *, verb: str | None = None) -> None:
    """Raise InvalidTransitionError unless ``current → target`` is an edge of ``table``."""
    if is_valid_transition(table, current, target):
        return
    allowed = next_states(table, current)
    message = None
    if verb:
        message = (
            f"Cannot {verb} {current} {entity.lower()}. "
            f"Valid next states: {', '.join(sorted(allowed)) or 'none'}"
        )
    raise InvalidTransitionError(entity, current, target, allowed, message=message)
