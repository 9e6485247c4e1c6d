"""Local edit/delete policy for records imported from the Tecsup feed.

Title, description and dates of an imported record belong to the upstream;
only fields whose meaning is purely local may change.
"""

from typing import Any

from productivity.db.models import Event, SourcedRecord, Task
from productivity.errors import ProtectedRecordError

# Fields an imported record may change locally, per record type
LOCAL_FIELDS: dict[type[SourcedRecord], frozenset[str]] = {
    Task: frozenset({"completed", "priority"}),
    Event: frozenset(),
}


def ensure_deletable(record: SourcedRecord) -> None:
    """Reject deleting an imported record; only a sync may remove it."""
    if record.is_imported:
        raise ProtectedRecordError(
            f"{type(record).__name__} {record.id} is synced from Tecsup and cannot be deleted"
        )


def check_update(record: SourcedRecord, changes: dict[str, Any]) -> dict[str, Any]:
    """Validate requested changes against the record's provenance.

    Args:
        record: The stored record.
        changes: Field name to requested value, unset fields omitted.

    Returns:
        The changes to apply. Unchanged values are dropped.

    Raises:
        ProtectedRecordError: An imported record would change a field the
            upstream owns. Nothing is applied in that case.
    """
    effective = {
        name: value for name, value in changes.items() if getattr(record, name) != value
    }
    if not record.is_imported:
        return effective

    allowed = LOCAL_FIELDS.get(type(record), frozenset())
    blocked = sorted(name for name in effective if name not in allowed)
    if blocked:
        raise ProtectedRecordError(
            f"{type(record).__name__} {record.id} is synced from Tecsup; "
            f"cannot change {', '.join(blocked)}",
            fields=blocked,
        )
    return effective
