"""Change variants and the ChangeSet container.

A ``Change`` is a closed, tagged union of fifteen variants, one per kind
of DDL operation.  Every variant exposes:

- ``type``: its ``ChangeType`` tag (the union discriminator)
- ``is_destructive``: True if applying it can discard data or relax a
  guarantee irreversibly
- ``description``: human-readable one-liner
- ``object_name``: the affected object

Usage:
    from db_migrator.schema.changes import ChangeSet, DropTableChange

    cs = ChangeSet()
    cs.add(DropTableChange(table=table))
    cs.has_destructive()  # True
"""

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from db_migrator.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    EnumSchema,
    FunctionSchema,
    IndexSchema,
    TableSchema,
)


class ChangeType(str, Enum):
    """Type tag of a schema change."""

    # Table changes
    CREATE_TABLE = "CREATE_TABLE"
    DROP_TABLE = "DROP_TABLE"

    # Column changes
    ADD_COLUMN = "ADD_COLUMN"
    DROP_COLUMN = "DROP_COLUMN"
    ALTER_COLUMN = "ALTER_COLUMN"

    # Index changes
    CREATE_INDEX = "CREATE_INDEX"
    DROP_INDEX = "DROP_INDEX"

    # Constraint changes
    ADD_CONSTRAINT = "ADD_CONSTRAINT"
    DROP_CONSTRAINT = "DROP_CONSTRAINT"

    # Enum changes
    CREATE_ENUM = "CREATE_ENUM"
    DROP_ENUM = "DROP_ENUM"
    ADD_ENUM_VALUE = "ADD_ENUM_VALUE"

    # Function changes
    CREATE_FUNCTION = "CREATE_FUNCTION"
    DROP_FUNCTION = "DROP_FUNCTION"
    REPLACE_FUNCTION = "REPLACE_FUNCTION"


ADDITIONS = frozenset({
    ChangeType.CREATE_TABLE,
    ChangeType.ADD_COLUMN,
    ChangeType.CREATE_INDEX,
    ChangeType.ADD_CONSTRAINT,
    ChangeType.CREATE_ENUM,
    ChangeType.ADD_ENUM_VALUE,
    ChangeType.CREATE_FUNCTION,
})

DELETIONS = frozenset({
    ChangeType.DROP_TABLE,
    ChangeType.DROP_COLUMN,
    ChangeType.DROP_INDEX,
    ChangeType.DROP_CONSTRAINT,
    ChangeType.DROP_ENUM,
    ChangeType.DROP_FUNCTION,
})

MODIFICATIONS = frozenset({
    ChangeType.ALTER_COLUMN,
    ChangeType.REPLACE_FUNCTION,
})


class BaseChange(BaseModel):
    """Common behaviour of all change variants."""

    model_config = ConfigDict(frozen=True)

    @property
    def is_destructive(self) -> bool:
        return False

    @property
    def description(self) -> str:
        raise NotImplementedError

    @property
    def object_name(self) -> str:
        raise NotImplementedError


# ------------------------------------------------------------------
# Tables
# ------------------------------------------------------------------


class CreateTableChange(BaseChange):
    type: Literal[ChangeType.CREATE_TABLE] = ChangeType.CREATE_TABLE
    table: TableSchema

    @property
    def object_name(self) -> str:
        return self.table.full_name

    @property
    def description(self) -> str:
        return f"Create table {self.table.full_name}"


class DropTableChange(BaseChange):
    type: Literal[ChangeType.DROP_TABLE] = ChangeType.DROP_TABLE
    table: TableSchema

    @property
    def is_destructive(self) -> bool:
        return True

    @property
    def object_name(self) -> str:
        return self.table.full_name

    @property
    def description(self) -> str:
        return f"Drop table {self.table.full_name}"


# ------------------------------------------------------------------
# Columns
# ------------------------------------------------------------------


class AddColumnChange(BaseChange):
    type: Literal[ChangeType.ADD_COLUMN] = ChangeType.ADD_COLUMN
    table_name: str
    column: ColumnSchema

    @property
    def object_name(self) -> str:
        return f"{self.table_name}.{self.column.name}"

    @property
    def description(self) -> str:
        return f"Add column {self.object_name} ({self.column.full_type})"


class DropColumnChange(BaseChange):
    type: Literal[ChangeType.DROP_COLUMN] = ChangeType.DROP_COLUMN
    table_name: str
    column: ColumnSchema

    @property
    def is_destructive(self) -> bool:
        return True

    @property
    def object_name(self) -> str:
        return f"{self.table_name}.{self.column.name}"

    @property
    def description(self) -> str:
        return f"Drop column {self.object_name}"


class ColumnAlteration(BaseModel):
    """Which attributes of a column changed, with old and new values.

    Several simultaneous attribute changes are folded into one record.
    """

    model_config = ConfigDict(frozen=True)

    type_changed: bool = False
    old_type: str = ""
    new_type: str = ""

    nullable_changed: bool = False
    old_nullable: bool = False
    new_nullable: bool = False

    default_changed: bool = False
    old_default: str | None = None
    new_default: str | None = None

    @property
    def has_changes(self) -> bool:
        return self.type_changed or self.nullable_changed or self.default_changed

    def format(self) -> str:
        """Short summary such as ``type int -> bigint, set not null``."""
        parts: list[str] = []
        if self.type_changed:
            parts.append(f"type {self.old_type} -> {self.new_type}")
        if self.nullable_changed:
            parts.append("set nullable" if self.new_nullable else "set not null")
        if self.default_changed:
            if self.new_default is None:
                parts.append("drop default")
            else:
                parts.append(f"set default {self.new_default}")
        return ", ".join(parts)


class AlterColumnChange(BaseChange):
    type: Literal[ChangeType.ALTER_COLUMN] = ChangeType.ALTER_COLUMN
    table_name: str
    column_name: str
    old_column: ColumnSchema
    new_column: ColumnSchema
    alteration: ColumnAlteration

    @property
    def is_destructive(self) -> bool:
        # Tightening nullability is destructive, relaxing it is not
        alt = self.alteration
        return alt.type_changed or (alt.nullable_changed and not alt.new_nullable)

    @property
    def object_name(self) -> str:
        return f"{self.table_name}.{self.column_name}"

    @property
    def description(self) -> str:
        return f"Alter column {self.object_name}: {self.alteration.format()}"


# ------------------------------------------------------------------
# Indexes
# ------------------------------------------------------------------


class CreateIndexChange(BaseChange):
    type: Literal[ChangeType.CREATE_INDEX] = ChangeType.CREATE_INDEX
    index: IndexSchema

    @property
    def object_name(self) -> str:
        return self.index.name

    @property
    def description(self) -> str:
        unique = "unique " if self.index.is_unique else ""
        return f"Create {unique}index {self.index.name} on {self.index.table_name}"


class DropIndexChange(BaseChange):
    """Indexes can always be rebuilt, so dropping one is never destructive."""

    type: Literal[ChangeType.DROP_INDEX] = ChangeType.DROP_INDEX
    index: IndexSchema

    @property
    def object_name(self) -> str:
        return self.index.name

    @property
    def description(self) -> str:
        return f"Drop index {self.index.name}"


# ------------------------------------------------------------------
# Constraints
# ------------------------------------------------------------------


class AddConstraintChange(BaseChange):
    type: Literal[ChangeType.ADD_CONSTRAINT] = ChangeType.ADD_CONSTRAINT
    table_name: str
    constraint: ConstraintSchema

    @property
    def object_name(self) -> str:
        return self.constraint.name

    @property
    def description(self) -> str:
        return (
            f"Add {self.constraint.constraint_type.value} constraint "
            f"{self.constraint.name} on {self.table_name}"
        )


class DropConstraintChange(BaseChange):
    type: Literal[ChangeType.DROP_CONSTRAINT] = ChangeType.DROP_CONSTRAINT
    table_name: str
    constraint: ConstraintSchema

    @property
    def is_destructive(self) -> bool:
        return self.constraint.constraint_type == ConstraintType.FOREIGN_KEY

    @property
    def object_name(self) -> str:
        return self.constraint.name

    @property
    def description(self) -> str:
        return (
            f"Drop {self.constraint.constraint_type.value} constraint "
            f"{self.constraint.name} from {self.table_name}"
        )


# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class CreateEnumChange(BaseChange):
    type: Literal[ChangeType.CREATE_ENUM] = ChangeType.CREATE_ENUM
    enum: EnumSchema

    @property
    def object_name(self) -> str:
        return self.enum.full_name

    @property
    def description(self) -> str:
        return f"Create enum {self.enum.full_name}"


class DropEnumChange(BaseChange):
    type: Literal[ChangeType.DROP_ENUM] = ChangeType.DROP_ENUM
    enum: EnumSchema

    @property
    def is_destructive(self) -> bool:
        return True

    @property
    def object_name(self) -> str:
        return self.enum.full_name

    @property
    def description(self) -> str:
        return f"Drop enum {self.enum.full_name}"


class AddEnumValueChange(BaseChange):
    """New enum label.  ``after`` is the anchor label; empty means no anchor."""

    type: Literal[ChangeType.ADD_ENUM_VALUE] = ChangeType.ADD_ENUM_VALUE
    enum_name: str
    value: str
    after: str = ""

    @property
    def object_name(self) -> str:
        return self.enum_name

    @property
    def description(self) -> str:
        if self.after:
            return f"Add value '{self.value}' to enum {self.enum_name} after '{self.after}'"
        return f"Add value '{self.value}' to enum {self.enum_name}"


# ------------------------------------------------------------------
# Functions
# ------------------------------------------------------------------


class CreateFunctionChange(BaseChange):
    type: Literal[ChangeType.CREATE_FUNCTION] = ChangeType.CREATE_FUNCTION
    function: FunctionSchema

    @property
    def object_name(self) -> str:
        return self.function.full_name

    @property
    def description(self) -> str:
        return f"Create function {self.function.signature}"


class DropFunctionChange(BaseChange):
    """Functions can be recreated from source, so dropping one is not destructive."""

    type: Literal[ChangeType.DROP_FUNCTION] = ChangeType.DROP_FUNCTION
    function: FunctionSchema

    @property
    def object_name(self) -> str:
        return self.function.full_name

    @property
    def description(self) -> str:
        return f"Drop function {self.function.signature}"


class ReplaceFunctionChange(BaseChange):
    type: Literal[ChangeType.REPLACE_FUNCTION] = ChangeType.REPLACE_FUNCTION
    old_function: FunctionSchema
    new_function: FunctionSchema

    @property
    def object_name(self) -> str:
        return self.new_function.full_name

    @property
    def description(self) -> str:
        return f"Replace function {self.new_function.signature}"


Change = Annotated[
    Union[
        CreateTableChange,
        DropTableChange,
        AddColumnChange,
        DropColumnChange,
        AlterColumnChange,
        CreateIndexChange,
        DropIndexChange,
        AddConstraintChange,
        DropConstraintChange,
        CreateEnumChange,
        DropEnumChange,
        AddEnumValueChange,
        CreateFunctionChange,
        DropFunctionChange,
        ReplaceFunctionChange,
    ],
    Field(discriminator="type"),
]


# ------------------------------------------------------------------
# ChangeSet
# ------------------------------------------------------------------


@dataclass
class DiffStat:
    """Change counts bucketed for ``diff --stat``."""

    additions: int = 0
    deletions: int = 0
    modifications: int = 0
    destructive: int = 0

    @property
    def total(self) -> int:
        return self.additions + self.deletions + self.modifications


@dataclass
class ChangeSet:
    """Sequence of changes.

    Order is meaningless until the set has passed through
    ``order_changes()``.  The list is owned by the set: build it with
    ``add()``/``extend()`` and treat it as read-only afterwards.
    """

    changes: list[Change] = field(default_factory=list)

    def add(self, change: Change) -> None:
        self.changes.append(change)

    def extend(self, changes: "list[Change] | ChangeSet") -> None:
        self.changes.extend(changes)

    def __len__(self) -> int:
        return len(self.changes)

    def __iter__(self) -> Iterator[Change]:
        return iter(self.changes)

    def is_empty(self) -> bool:
        return not self.changes

    def has_destructive(self) -> bool:
        return any(c.is_destructive for c in self.changes)

    def destructive_count(self) -> int:
        return sum(1 for c in self.changes if c.is_destructive)

    def by_type(self, change_type: ChangeType) -> list[Change]:
        """Changes of one type, in set order."""
        return [c for c in self.changes if c.type == change_type]

    def summary(self) -> dict[ChangeType, int]:
        """Count of changes per type."""
        return dict(Counter(c.type for c in self.changes))

    def stat(self) -> DiffStat:
        """Addition / deletion / modification buckets plus destructive count."""
        result = DiffStat(destructive=self.destructive_count())
        for change in self.changes:
            if change.type in ADDITIONS:
                result.additions += 1
            elif change.type in DELETIONS:
                result.deletions += 1
            elif change.type in MODIFICATIONS:
                result.modifications += 1
        return result
