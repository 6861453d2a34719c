"""Structural schema diff.

Compares two ``DatabaseSchema`` snapshots using set operations on their
keys.  Pure logic -- no I/O, no database connections.

For every object category the keys are partitioned three ways:

- only in *from_schema*: drop
- only in *to_schema*: create
- in both: structural compare, emitting an alter / replace / drop+create

Keys are always visited in sorted order so that the same pair of
snapshots yields the same ChangeSet.

Usage:
    from db_migrator.schema.differ import diff

    changes = diff(current_schema, desired_schema)
    if changes.is_empty():
        print("Schemas are identical")
"""

from db_migrator.schema.changes import (
    AddColumnChange,
    AddConstraintChange,
    AddEnumValueChange,
    AlterColumnChange,
    ChangeSet,
    ColumnAlteration,
    CreateEnumChange,
    CreateFunctionChange,
    CreateIndexChange,
    CreateTableChange,
    DropColumnChange,
    DropConstraintChange,
    DropEnumChange,
    DropFunctionChange,
    DropIndexChange,
    DropTableChange,
    ReplaceFunctionChange,
)
from db_migrator.schema.models import (
    ColumnSchema,
    ConstraintType,
    DatabaseSchema,
    EnumSchema,
    IndexSchema,
    TableSchema,
)

# Constraint kinds that own an index of the same name
_INDEX_BACKED_CONSTRAINTS = frozenset({
    ConstraintType.PRIMARY_KEY,
    ConstraintType.UNIQUE,
    ConstraintType.EXCLUDE,
})


def diff(from_schema: DatabaseSchema, to_schema: DatabaseSchema) -> ChangeSet:
    """Compute the changes that turn *from_schema* into *to_schema*.

    Deterministic and total: every pair of snapshots produces a ChangeSet,
    possibly empty.  Neither input is modified.

    Args:
        from_schema: The current state.
        to_schema: The desired state.

    Returns:
        Unordered ``ChangeSet``.  Pass it through ``order_changes()``
        before rendering or applying.

    Examples:
        >>> diff(schema, schema).is_empty()
        True
    """
    cs = ChangeSet()
    _diff_enums(from_schema, to_schema, cs)
    _diff_tables(from_schema, to_schema, cs)
    _diff_functions(from_schema, to_schema, cs)
    return cs


# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


def _diff_enums(from_schema: DatabaseSchema, to_schema: DatabaseSchema, cs: ChangeSet) -> None:
    for name in sorted(from_schema.enums.keys() - to_schema.enums.keys()):
        cs.add(DropEnumChange(enum=from_schema.enums[name]))

    for name in sorted(to_schema.enums):
        to_enum = to_schema.enums[name]
        from_enum = from_schema.enums.get(name)
        if from_enum is None:
            cs.add(CreateEnumChange(enum=to_enum))
            continue
        _diff_enum_values(from_enum, to_enum, cs)


def _diff_enum_values(from_enum: EnumSchema, to_enum: EnumSchema, cs: ChangeSet) -> None:
    """Emit additions only; labels are never dropped or reordered."""
    existing = set(from_enum.values)
    for i, value in enumerate(to_enum.values):
        if value in existing:
            continue
        after = to_enum.values[i - 1] if i > 0 else ""
        cs.add(AddEnumValueChange(enum_name=to_enum.full_name, value=value, after=after))


# ------------------------------------------------------------------
# Tables
# ------------------------------------------------------------------


def _diff_tables(from_schema: DatabaseSchema, to_schema: DatabaseSchema, cs: ChangeSet) -> None:
    for name in sorted(from_schema.tables.keys() - to_schema.tables.keys()):
        cs.add(DropTableChange(table=from_schema.tables[name]))

    for name in sorted(to_schema.tables):
        to_table = to_schema.tables[name]
        from_table = from_schema.tables.get(name)
        if from_table is None:
            cs.add(CreateTableChange(table=to_table))
            # The CREATE TABLE body carries no indexes
            for index in _managed_indexes(to_table).values():
                cs.add(CreateIndexChange(index=index))
            continue

        _diff_columns(from_table, to_table, cs)
        _diff_indexes(from_table, to_table, cs)
        _diff_constraints(from_table, to_table, cs)


def _diff_columns(from_table: TableSchema, to_table: TableSchema, cs: ChangeSet) -> None:
    table_name = to_table.full_name

    for name in sorted(from_table.columns.keys() - to_table.columns.keys()):
        cs.add(DropColumnChange(table_name=table_name, column=from_table.columns[name]))

    for name in sorted(to_table.columns):
        to_col = to_table.columns[name]
        from_col = from_table.columns.get(name)
        if from_col is None:
            cs.add(AddColumnChange(table_name=table_name, column=to_col))
            continue

        if not from_col.matches(to_col):
            cs.add(
                AlterColumnChange(
                    table_name=table_name,
                    column_name=name,
                    old_column=from_col,
                    new_column=to_col,
                    alteration=compute_column_alteration(from_col, to_col),
                )
            )


def compute_column_alteration(from_col: ColumnSchema, to_col: ColumnSchema) -> ColumnAlteration:
    """Fold every changed column attribute into one ``ColumnAlteration``."""
    fields: dict = {}

    if from_col.full_type != to_col.full_type:
        fields.update(type_changed=True, old_type=from_col.full_type, new_type=to_col.full_type)

    if from_col.is_nullable != to_col.is_nullable:
        fields.update(
            nullable_changed=True,
            old_nullable=from_col.is_nullable,
            new_nullable=to_col.is_nullable,
        )

    if from_col.default != to_col.default:
        fields.update(
            default_changed=True,
            old_default=from_col.default,
            new_default=to_col.default,
        )

    return ColumnAlteration(**fields)


def _managed_indexes(table: TableSchema) -> dict[str, IndexSchema]:
    """Indexes diffed on their own.

    Primary-key indexes, and indexes backing a unique or exclusion
    constraint of the same name, are created and dropped with their
    constraint.
    """
    backing = {
        c.name
        for c in table.constraints.values()
        if c.constraint_type in _INDEX_BACKED_CONSTRAINTS
    }
    return {
        name: idx
        for name, idx in sorted(table.indexes.items())
        if not idx.is_primary and name not in backing
    }


def _diff_indexes(from_table: TableSchema, to_table: TableSchema, cs: ChangeSet) -> None:
    from_indexes = _managed_indexes(from_table)
    to_indexes = _managed_indexes(to_table)

    for name in sorted(from_indexes.keys() - to_indexes.keys()):
        cs.add(DropIndexChange(index=from_indexes[name]))

    for name, to_idx in to_indexes.items():
        from_idx = from_indexes.get(name)
        if from_idx is None:
            cs.add(CreateIndexChange(index=to_idx))
            continue

        # Index definitions are not alterable in place
        if not from_idx.matches(to_idx):
            cs.add(DropIndexChange(index=from_idx))
            cs.add(CreateIndexChange(index=to_idx))


def _diff_constraints(from_table: TableSchema, to_table: TableSchema, cs: ChangeSet) -> None:
    table_name = to_table.full_name

    for name in sorted(from_table.constraints.keys() - to_table.constraints.keys()):
        cs.add(DropConstraintChange(table_name=table_name, constraint=from_table.constraints[name]))

    for name in sorted(to_table.constraints):
        to_con = to_table.constraints[name]
        from_con = from_table.constraints.get(name)
        if from_con is None:
            cs.add(AddConstraintChange(table_name=table_name, constraint=to_con))
            continue

        if not from_con.matches(to_con):
            cs.add(DropConstraintChange(table_name=table_name, constraint=from_con))
            cs.add(AddConstraintChange(table_name=table_name, constraint=to_con))


# ------------------------------------------------------------------
# Functions
# ------------------------------------------------------------------


def _diff_functions(from_schema: DatabaseSchema, to_schema: DatabaseSchema, cs: ChangeSet) -> None:
    for sig in sorted(from_schema.functions.keys() - to_schema.functions.keys()):
        cs.add(DropFunctionChange(function=from_schema.functions[sig]))

    for sig in sorted(to_schema.functions):
        to_fn = to_schema.functions[sig]
        from_fn = from_schema.functions.get(sig)
        if from_fn is None:
            cs.add(CreateFunctionChange(function=to_fn))
            continue

        if not from_fn.matches(to_fn):
            cs.add(ReplaceFunctionChange(old_function=from_fn, new_function=to_fn))
