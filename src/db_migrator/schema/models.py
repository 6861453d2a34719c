"""Pydantic models describing a database schema snapshot.

This module contains the schema-domain models:
- Object models: ColumnSchema, IndexSchema, ConstraintSchema, EnumSchema,
  FunctionSchema, TableSchema
- Root model: DatabaseSchema

All models are frozen.  A snapshot is built once (by the introspector or
by loading a JSON snapshot) and is never mutated afterwards; the differ
only reads it.

Map-keyed collections carry no ordering guarantee.  Anything that needs
a deterministic order goes through the ``sorted_*`` helpers.
"""

import hashlib
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def qualify_name(schema_name: str, name: str) -> str:
    """Prefix ``name`` with its schema unless it lives in ``public``."""
    if not schema_name or schema_name == "public":
        return name
    return f"{schema_name}.{name}"


def compute_body_hash(definition: str) -> str:
    """Short content fingerprint of a function definition.

    First 8 bytes of the SHA-256 digest, hex encoded (16 characters).

    Example:
        >>> len(compute_body_hash("CREATE FUNCTION f() ..."))
        16
    """
    return hashlib.sha256(definition.encode("utf-8")).digest()[:8].hex()


# ============================================================================
# Column / Index / Constraint
# ============================================================================


class ColumnSchema(BaseModel):
    """Schema for a database column.

    Example:
        >>> col = ColumnSchema(name="price", data_type="numeric",
        ...                    numeric_precision=10, numeric_scale=2)
        >>> col.full_type
        'numeric(10,2)'
    """

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    position: int = 0

    char_max_length: int | None = None
    numeric_precision: int | None = None
    numeric_scale: int | None = None

    is_array: bool = False
    element_type: str = ""

    @property
    def full_type(self) -> str:
        """Canonical type string used for type equality."""
        typ = self.data_type

        if self.char_max_length is not None:
            if typ in ("varchar", "character varying"):
                typ = f"varchar({self.char_max_length})"
            elif typ in ("char", "character"):
                typ = f"char({self.char_max_length})"

        if self.numeric_precision is not None and typ in ("numeric", "decimal"):
            if self.numeric_scale is not None and self.numeric_scale > 0:
                typ = f"numeric({self.numeric_precision},{self.numeric_scale})"
            else:
                typ = f"numeric({self.numeric_precision})"

        if self.is_array:
            typ = f"{typ}[]"

        return typ

    def matches(self, other: "ColumnSchema") -> bool:
        """True if type, nullability and default are all equal."""
        return (
            self.full_type == other.full_type
            and self.is_nullable == other.is_nullable
            and self.default == other.default
        )


class IndexSchema(BaseModel):
    """Schema for a database index."""

    model_config = ConfigDict(frozen=True)

    name: str
    table_name: str = ""
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False
    index_type: str = "btree"  # btree, hash, gin, gist, ...
    definition: str = ""  # pg_get_indexdef() output

    def matches(self, other: "IndexSchema") -> bool:
        """Structural equality: uniqueness, primary flag, method, columns."""
        return (
            self.is_unique == other.is_unique
            and self.is_primary == other.is_primary
            and self.index_type == other.index_type
            and self.columns == other.columns
        )


class ConstraintType(str, Enum):
    """Kinds of table constraints."""

    PRIMARY_KEY = "PRIMARY KEY"
    FOREIGN_KEY = "FOREIGN KEY"
    UNIQUE = "UNIQUE"
    CHECK = "CHECK"
    EXCLUDE = "EXCLUDE"


class ConstraintSchema(BaseModel):
    """Schema for a database constraint.

    ``definition`` is the rendered text from ``pg_get_constraintdef()``,
    e.g. ``FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE``.
    Equality is by name, type and definition text.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    constraint_type: ConstraintType
    table_name: str = ""
    columns: list[str] = Field(default_factory=list)
    definition: str = ""

    references_table: str | None = None
    references_columns: list[str] | None = None
    on_delete: str | None = None
    on_update: str | None = None

    def matches(self, other: "ConstraintSchema") -> bool:
        return (
            self.name == other.name
            and self.constraint_type == other.constraint_type
            and self.definition == other.definition
        )


# ============================================================================
# Enum / Function
# ============================================================================


class EnumSchema(BaseModel):
    """Schema for an enumerated type.  Label order is significant."""

    model_config = ConfigDict(frozen=True)

    name: str
    schema_name: str = "public"
    values: list[str] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return qualify_name(self.schema_name, self.name)


class FunctionSchema(BaseModel):
    """Schema for a database function or procedure.

    Identity is the signature ``name(arguments)``, so overloads are
    distinct objects.  ``body_hash`` is derived from ``definition`` when
    not supplied.  ``identity_arguments`` is the argument list without
    ``DEFAULT`` clauses, as ``DROP FUNCTION`` expects it; empty when
    unknown.

    Example:
        >>> fn = FunctionSchema(name="add", arguments="a integer, b integer",
        ...                     return_type="integer", definition="...")
        >>> fn.signature
        'add(a integer, b integer)'
    """

    model_config = ConfigDict(frozen=True)

    name: str
    schema_name: str = "public"
    arguments: str = ""
    identity_arguments: str = ""
    return_type: str = ""
    language: str = ""
    definition: str = ""
    body_hash: str = ""

    @model_validator(mode="before")
    @classmethod
    def _fill_body_hash(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("body_hash"):
            data = {**data, "body_hash": compute_body_hash(data.get("definition", ""))}
        return data

    @property
    def signature(self) -> str:
        return f"{self.name}({self.arguments})"

    @property
    def full_name(self) -> str:
        return qualify_name(self.schema_name, self.signature)

    def matches(self, other: "FunctionSchema") -> bool:
        return (
            self.signature == other.signature
            and self.return_type == other.return_type
            and self.body_hash == other.body_hash
        )


# ============================================================================
# Table / Database
# ============================================================================


class TableSchema(BaseModel):
    """Schema for a database table."""

    model_config = ConfigDict(frozen=True)

    name: str
    schema_name: str = "public"
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    indexes: dict[str, IndexSchema] = Field(default_factory=dict)
    constraints: dict[str, ConstraintSchema] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_positions(self) -> "TableSchema":
        seen: dict[int, str] = {}
        for col in self.columns.values():
            if col.position <= 0:
                continue
            if col.position in seen:
                raise ValueError(
                    f"Columns '{seen[col.position]}' and '{col.name}' of table "
                    f"'{self.name}' share position {col.position}"
                )
            seen[col.position] = col.name
        return self

    @property
    def full_name(self) -> str:
        return qualify_name(self.schema_name, self.name)

    def sorted_columns(self) -> list[ColumnSchema]:
        """Columns in declaration order (name breaks ties)."""
        return sorted(self.columns.values(), key=lambda c: (c.position, c.name))

    def sorted_indexes(self) -> list[IndexSchema]:
        return sorted(self.indexes.values(), key=lambda i: i.name)

    def sorted_constraints(self) -> list[ConstraintSchema]:
        return sorted(self.constraints.values(), key=lambda c: c.name)


class DatabaseSchema(BaseModel):
    """Complete database schema snapshot.

    Keys: ``TableSchema.full_name``, ``EnumSchema.full_name`` and
    ``FunctionSchema.full_name`` (the schema-qualified signature).
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    tables: dict[str, TableSchema] = Field(default_factory=dict)
    enums: dict[str, EnumSchema] = Field(default_factory=dict)
    functions: dict[str, FunctionSchema] = Field(default_factory=dict)

    def sorted_tables(self) -> list[TableSchema]:
        return [self.tables[k] for k in sorted(self.tables)]

    def sorted_enums(self) -> list[EnumSchema]:
        return [self.enums[k] for k in sorted(self.enums)]

    def sorted_functions(self) -> list[FunctionSchema]:
        return [self.functions[k] for k in sorted(self.functions)]
