# Overview: ORM listeners that keep stock movement rows append-only.

"""
Stock movements are written once and never updated. Corrections are new
rows (adjustment/return/out); invoice-sourced rows are deleted and
regenerated by the invoice projection, never edited in place.

The listener fires before the UPDATE is sent, so a violating flush raises
and the surrounding transaction is rolled back by the caller.
"""

from sqlalchemy import event, inspect

from .models import StockMovement
from .validation import InvalidOperationError


def _changed_columns(target) -> list[str]:
    state = inspect(target)
    return [
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]


def _reject_movement_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        raise InvalidOperationError(
            f"stock movements are immutable (attempted change: {', '.join(sorted(changed))})"
        )


def register_immutability_listeners() -> None:
    """Idempotent; called from the application factory."""
    if not event.contains(StockMovement, "before_update", _reject_movement_update):
        event.listen(StockMovement, "before_update", _reject_movement_update)
