"""Tests for change variants and ChangeSet."""

import pytest
from pydantic import TypeAdapter

from db_migrator.schema.changes import (
    AddColumnChange,
    AddConstraintChange,
    AddEnumValueChange,
    AlterColumnChange,
    Change,
    ChangeSet,
    ChangeType,
    ColumnAlteration,
    CreateEnumChange,
    CreateFunctionChange,
    CreateIndexChange,
    CreateTableChange,
    DiffStat,
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
    ConstraintSchema,
    ConstraintType,
    EnumSchema,
    FunctionSchema,
    IndexSchema,
    TableSchema,
)

USERS = TableSchema(name="users")
EMAIL = ColumnSchema(name="email", data_type="text")
IDX = IndexSchema(name="idx_users_email", table_name="users", columns=["email"])
FK = ConstraintSchema(
    name="orders_user_fk",
    constraint_type=ConstraintType.FOREIGN_KEY,
    definition="FOREIGN KEY (user_id) REFERENCES users(id)",
)
CHECK = ConstraintSchema(
    name="age_check", constraint_type=ConstraintType.CHECK, definition="CHECK ((age > 0))"
)
STATUS = EnumSchema(name="status", values=["pending", "active"])
FN = FunctionSchema(name="add", arguments="a integer, b integer", definition="CREATE FUNCTION ...")


def _alter(**fields) -> AlterColumnChange:
    return AlterColumnChange(
        table_name="users",
        column_name="age",
        old_column=ColumnSchema(name="age", data_type="int"),
        new_column=ColumnSchema(name="age", data_type="int"),
        alteration=ColumnAlteration(**fields),
    )


# ============================================================================
# Test: Destructive classification
# ============================================================================


class TestDestructiveClassification:
    """Which changes can discard data or relax guarantees irreversibly."""

    @pytest.mark.parametrize(
        "change, expected",
        [
            (CreateTableChange(table=USERS), False),
            (DropTableChange(table=USERS), True),
            (AddColumnChange(table_name="users", column=EMAIL), False),
            (DropColumnChange(table_name="users", column=EMAIL), True),
            (_alter(type_changed=True, old_type="int", new_type="bigint"), True),
            (_alter(nullable_changed=True, old_nullable=True, new_nullable=False), True),
            (_alter(nullable_changed=True, old_nullable=False, new_nullable=True), False),
            (_alter(default_changed=True, old_default=None, new_default="0"), False),
            (CreateIndexChange(index=IDX), False),
            (DropIndexChange(index=IDX), False),
            (AddConstraintChange(table_name="orders", constraint=FK), False),
            (DropConstraintChange(table_name="orders", constraint=FK), True),
            (DropConstraintChange(table_name="users", constraint=CHECK), False),
            (CreateEnumChange(enum=STATUS), False),
            (DropEnumChange(enum=STATUS), True),
            (AddEnumValueChange(enum_name="status", value="deleted"), False),
            (CreateFunctionChange(function=FN), False),
            (DropFunctionChange(function=FN), False),
            (ReplaceFunctionChange(old_function=FN, new_function=FN), False),
        ],
    )
    def test_is_destructive(self, change, expected: bool) -> None:
        assert change.is_destructive is expected


# ============================================================================
# Test: Descriptions
# ============================================================================


class TestDescriptions:

    def test_add_column(self) -> None:
        change = AddColumnChange(
            table_name="users",
            column=ColumnSchema(name="name", data_type="varchar", char_max_length=100),
        )
        assert change.description == "Add column users.name (varchar(100))"
        assert change.object_name == "users.name"

    def test_alter_column(self) -> None:
        change = _alter(
            type_changed=True,
            old_type="int",
            new_type="bigint",
            nullable_changed=True,
            old_nullable=True,
            new_nullable=False,
        )
        assert change.description == "Alter column users.age: type int -> bigint, set not null"

    def test_alteration_format_defaults(self) -> None:
        assert ColumnAlteration(default_changed=True, old_default="0").format() == "drop default"
        assert (
            ColumnAlteration(default_changed=True, new_default="now()").format()
            == "set default now()"
        )
        assert not ColumnAlteration().has_changes

    def test_add_enum_value_with_and_without_anchor(self) -> None:
        anchored = AddEnumValueChange(enum_name="status", value="deleted", after="active")
        assert anchored.description == "Add value 'deleted' to enum status after 'active'"
        assert (
            AddEnumValueChange(enum_name="status", value="new").description
            == "Add value 'new' to enum status"
        )

    def test_constraint_descriptions(self) -> None:
        assert (
            DropConstraintChange(table_name="orders", constraint=FK).description
            == "Drop FOREIGN KEY constraint orders_user_fk from orders"
        )
        assert (
            AddConstraintChange(table_name="users", constraint=CHECK).description
            == "Add CHECK constraint age_check on users"
        )

    def test_function_object_name_is_signature(self) -> None:
        change = DropFunctionChange(function=FN)
        assert change.object_name == "add(a integer, b integer)"
        assert change.description == "Drop function add(a integer, b integer)"


# ============================================================================
# Test: Change union
# ============================================================================


class TestChangeUnion:

    def test_discriminated_by_type(self) -> None:
        adapter = TypeAdapter(Change)
        change = adapter.validate_python({"type": "DROP_TABLE", "table": {"name": "users"}})
        assert isinstance(change, DropTableChange)
        assert change.type is ChangeType.DROP_TABLE

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError):
            TypeAdapter(Change).validate_python({"type": "RENAME_TABLE"})


# ============================================================================
# Test: ChangeSet
# ============================================================================


class TestChangeSet:

    @pytest.fixture
    def changes(self) -> ChangeSet:
        cs = ChangeSet()
        cs.add(CreateEnumChange(enum=STATUS))
        cs.add(AddColumnChange(table_name="users", column=EMAIL))
        cs.add(DropTableChange(table=TableSchema(name="legacy")))
        cs.add(_alter(default_changed=True, new_default="0"))
        cs.add(AddColumnChange(table_name="users", column=ColumnSchema(name="bio", data_type="text")))
        return cs

    def test_empty(self) -> None:
        cs = ChangeSet()
        assert cs.is_empty()
        assert len(cs) == 0
        assert not cs.has_destructive()
        assert cs.summary() == {}

    def test_len_and_iter(self, changes: ChangeSet) -> None:
        assert len(changes) == 5
        assert [c.type for c in changes][:2] == [ChangeType.CREATE_ENUM, ChangeType.ADD_COLUMN]

    def test_destructive(self, changes: ChangeSet) -> None:
        assert changes.has_destructive()
        assert changes.destructive_count() == 1

    def test_by_type_keeps_order(self, changes: ChangeSet) -> None:
        added = changes.by_type(ChangeType.ADD_COLUMN)
        assert [c.column.name for c in added] == ["email", "bio"]

    def test_summary(self, changes: ChangeSet) -> None:
        assert changes.summary() == {
            ChangeType.CREATE_ENUM: 1,
            ChangeType.ADD_COLUMN: 2,
            ChangeType.DROP_TABLE: 1,
            ChangeType.ALTER_COLUMN: 1,
        }

    def test_stat(self, changes: ChangeSet) -> None:
        stat = changes.stat()
        assert stat == DiffStat(additions=3, deletions=1, modifications=1, destructive=1)
        assert stat.total == 5

    def test_extend_accepts_changeset(self) -> None:
        cs = ChangeSet()
        cs.extend(ChangeSet(changes=[CreateEnumChange(enum=STATUS)]))
        cs.extend([DropEnumChange(enum=STATUS)])
        assert len(cs) == 2
