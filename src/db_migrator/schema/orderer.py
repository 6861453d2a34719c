"""Dependency-safe ordering of a ChangeSet.

Changes are grouped by a fixed global phase order and concatenated.
Within a phase the input order is kept.

Additive changes that later objects may depend on run first (enums
before tables, columns before the indexes and constraints on them).
Removals run last, constraints before the columns, indexes, tables and
enums they reference, tables before the enums their columns used.
"""

from db_migrator.schema.changes import ChangeSet, ChangeType

CHANGE_ORDER: tuple[ChangeType, ...] = (
    ChangeType.CREATE_ENUM,
    ChangeType.ADD_ENUM_VALUE,
    ChangeType.CREATE_TABLE,
    ChangeType.ADD_COLUMN,
    ChangeType.CREATE_INDEX,
    ChangeType.ADD_CONSTRAINT,
    ChangeType.CREATE_FUNCTION,
    ChangeType.REPLACE_FUNCTION,
    ChangeType.DROP_CONSTRAINT,
    ChangeType.DROP_INDEX,
    ChangeType.ALTER_COLUMN,
    ChangeType.DROP_COLUMN,
    ChangeType.DROP_TABLE,
    ChangeType.DROP_ENUM,
    ChangeType.DROP_FUNCTION,
)

_PHASE = {change_type: i for i, change_type in enumerate(CHANGE_ORDER)}


def order_changes(cs: ChangeSet) -> ChangeSet:
    """Return a new ChangeSet with the same changes in safe execution order.

    A pure permutation: nothing is added, removed or modified, and the
    input set is left as it was.

    Example:
        >>> ordered = order_changes(diff(current, desired))
        >>> [c.type for c in ordered][:1]
        [<ChangeType.CREATE_ENUM: 'CREATE_ENUM'>]
    """
    # sorted() is stable, so each phase keeps its input order
    return ChangeSet(changes=sorted(cs.changes, key=lambda c: _PHASE[c.type]))
