"""DDL generation from schema changes.

Renders each ``Change`` into PostgreSQL DDL and assembles full migration
files.

Usage:
    from db_migrator.schema.sql import SQLGenerator

    generator = SQLGenerator()
    for line in generator.generate(ordered_changes):
        print(line)

    content = generator.generate_migration_file(ordered_changes, "Merge feature")
"""

import re
from collections.abc import Callable
from datetime import datetime

from db_migrator.schema.changes import (
    AddColumnChange,
    AddConstraintChange,
    AddEnumValueChange,
    AlterColumnChange,
    Change,
    ChangeSet,
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
from db_migrator.schema.models import ColumnSchema, ConstraintType, FunctionSchema, IndexSchema
from db_migrator.schema.orderer import CHANGE_ORDER

_DEFAULT_CLAUSE = re.compile(r"\s+(?:DEFAULT\b|=)\s*", re.IGNORECASE)

RESERVED_WORDS = frozenset({
    "all", "and", "as", "asc", "by", "check", "column", "constraint",
    "create", "default", "desc", "from", "group", "index", "join", "limit",
    "on", "or", "order", "primary", "references", "select", "table", "user",
    "where",
})


class ChangeRenderError(ValueError):
    """A change rendered to no SQL at all."""

    def __init__(self, change: Change) -> None:
        self.change = change
        super().__init__(f"Change produced no SQL: {change.description}")


# ------------------------------------------------------------------
# Quoting
# ------------------------------------------------------------------


def _is_simple_ident(name: str) -> bool:
    if not name:
        return False
    first = name[0]
    if not ("a" <= first <= "z" or first == "_"):
        return False
    for ch in name[1:]:
        if not ("a" <= ch <= "z" or "0" <= ch <= "9" or ch == "_"):
            return False
    return name not in RESERVED_WORDS


def quote_ident(name: str) -> str:
    """Quote an identifier only when necessary.

    Examples:
        >>> quote_ident("users")
        'users'
        >>> quote_ident("User")
        '"User"'
        >>> quote_ident("order")
        '"order"'
    """
    if _is_simple_ident(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_qualified(name: str) -> str:
    """Quote each dot-separated part of a schema-qualified name.

    Example:
        >>> quote_qualified("Billing.invoices")
        '"Billing".invoices'
    """
    return ".".join(quote_ident(part) for part in name.split("."))


def quote_idents(names: list[str]) -> list[str]:
    return [quote_ident(n) for n in names]


def quote_literal(value: str) -> str:
    """Single-quote a string literal, doubling embedded quotes."""
    return "'" + value.replace("'", "''") + "'"


def _terminate(sql: str) -> str:
    sql = sql.rstrip()
    return sql if sql.endswith(";") else sql + ";"


# ------------------------------------------------------------------
# Generator
# ------------------------------------------------------------------


class SQLGenerator:
    """Generates SQL statements from changes.

    Args:
        include_comments: Emit a ``-- description`` line before each
            change in ``generate()``.
        tool_name: Name written in migration file headers.
    """

    def __init__(self, include_comments: bool = True, tool_name: str = "db-migrator") -> None:
        self.include_comments = include_comments
        self.tool_name = tool_name
        self._renderers: dict[type, Callable[..., list[str]]] = {
            CreateTableChange: self._create_table,
            DropTableChange: self._drop_table,
            AddColumnChange: self._add_column,
            DropColumnChange: self._drop_column,
            AlterColumnChange: self._alter_column,
            CreateIndexChange: self._create_index,
            DropIndexChange: self._drop_index,
            AddConstraintChange: self._add_constraint,
            DropConstraintChange: self._drop_constraint,
            CreateEnumChange: self._create_enum,
            DropEnumChange: self._drop_enum,
            AddEnumValueChange: self._add_enum_value,
            CreateFunctionChange: self._create_function,
            DropFunctionChange: self._drop_function,
            ReplaceFunctionChange: self._replace_function,
        }

    def generate_statements(self, change: Change) -> list[str]:
        """Render *change* into individual semicolon-terminated statements.

        Returns an empty list for an unknown change variant.
        """
        renderer = self._renderers.get(type(change))
        if renderer is None:
            return []
        return renderer(change)

    def generate_change(self, change: Change) -> str:
        """Render *change* as newline-joined statements.

        An empty string means the change cannot be rendered; callers must
        treat it as an error rather than skip it.

        Example:
            >>> gen.generate_change(AddColumnChange(
            ...     table_name="users",
            ...     column=ColumnSchema(name="email", data_type="text", is_nullable=False),
            ... ))
            'ALTER TABLE users ADD COLUMN email text NOT NULL;'
        """
        return "\n".join(self.generate_statements(change))

    def generate(self, cs: ChangeSet) -> list[str]:
        """Render every change, each optionally preceded by a comment line.

        Raises:
            ChangeRenderError: If a change renders to nothing.
        """
        statements: list[str] = []
        for change in cs:
            sql = self.generate_change(change)
            if not sql:
                raise ChangeRenderError(change)
            if self.include_comments:
                statements.append(self.generate_comment(change))
            statements.append(sql)
        return statements

    def generate_comment(self, change: Change) -> str:
        destructive = " (DESTRUCTIVE)" if change.is_destructive else ""
        return f"-- {change.description}{destructive}"

    def generate_migration_file(
        self,
        cs: ChangeSet,
        description: str = "",
        generated_at: datetime | None = None,
    ) -> str:
        """Assemble a complete migration file.

        Header block (tool, timestamp, description, per-type counts,
        destructive warning) followed by the rendered statements wrapped
        in ``BEGIN;`` / ``COMMIT;``.

        Args:
            cs: Ordered ChangeSet.
            description: Optional description line.
            generated_at: Timestamp for the header (default: now).

        Returns:
            File content, newline-terminated.

        Raises:
            ChangeRenderError: If a change renders to nothing.
        """
        if generated_at is None:
            generated_at = datetime.now().astimezone()

        lines: list[str] = [
            f"-- Migration generated by {self.tool_name}",
            f"-- Generated at: {generated_at.isoformat(timespec='seconds')}",
        ]
        if description:
            lines.append(f"-- Description: {description}")
        lines.append("")

        summary = cs.summary()
        if summary:
            lines.append("-- Changes:")
            for change_type in CHANGE_ORDER:
                if change_type in summary:
                    lines.append(f"--   {change_type.value}: {summary[change_type]}")
            lines.append("")

        if cs.has_destructive():
            lines.append(
                f"-- WARNING: This migration contains {cs.destructive_count()} "
                f"destructive change(s)"
            )
            lines.append("")

        lines.append("BEGIN;")
        lines.append("")

        for stmt in self.generate(cs):
            lines.append(stmt)
            if not stmt.startswith("--"):
                lines.append("")

        lines.append("COMMIT;")
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Tables and columns
    # ------------------------------------------------------------------

    def column_definition(self, column: ColumnSchema) -> str:
        parts = [quote_ident(column.name), column.full_type]
        if not column.is_nullable:
            parts.append("NOT NULL")
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        return " ".join(parts)

    def _create_table(self, change: CreateTableChange) -> list[str]:
        table = change.table
        body = ",\n".join(f"    {self.column_definition(c)}" for c in table.sorted_columns())
        create = f"CREATE TABLE {quote_qualified(table.full_name)} (\n{body}\n);"

        # The column block does not declare keys: primary key first, then the rest by name
        constraints = sorted(
            table.constraints.values(),
            key=lambda c: (c.constraint_type != ConstraintType.PRIMARY_KEY, c.name),
        )
        statements = [create]
        for con in constraints:
            statements.extend(
                self._add_constraint(AddConstraintChange(table_name=table.full_name, constraint=con))
            )
        return statements

    def _drop_table(self, change: DropTableChange) -> list[str]:
        return [f"DROP TABLE {quote_qualified(change.table.full_name)};"]

    def _add_column(self, change: AddColumnChange) -> list[str]:
        return [
            f"ALTER TABLE {quote_qualified(change.table_name)} "
            f"ADD COLUMN {self.column_definition(change.column)};"
        ]

    def _drop_column(self, change: DropColumnChange) -> list[str]:
        return [
            f"ALTER TABLE {quote_qualified(change.table_name)} "
            f"DROP COLUMN {quote_ident(change.column.name)};"
        ]

    def _alter_column(self, change: AlterColumnChange) -> list[str]:
        prefix = (
            f"ALTER TABLE {quote_qualified(change.table_name)} "
            f"ALTER COLUMN {quote_ident(change.column_name)}"
        )
        alt = change.alteration
        statements: list[str] = []

        if alt.type_changed:
            statements.append(f"{prefix} TYPE {alt.new_type};")

        if alt.nullable_changed:
            action = "DROP NOT NULL" if alt.new_nullable else "SET NOT NULL"
            statements.append(f"{prefix} {action};")

        if alt.default_changed:
            if alt.new_default is None:
                statements.append(f"{prefix} DROP DEFAULT;")
            else:
                statements.append(f"{prefix} SET DEFAULT {alt.new_default};")

        return statements

    # ------------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------------

    def _create_index(self, change: CreateIndexChange) -> list[str]:
        index = change.index
        if index.definition:
            return [_terminate(index.definition)]

        unique = "UNIQUE " if index.is_unique else ""
        using = f" USING {index.index_type}" if index.index_type and index.index_type != "btree" else ""
        return [
            f"CREATE {unique}INDEX {quote_ident(index.name)} "
            f"ON {quote_qualified(index.table_name)}{using} "
            f"({', '.join(quote_idents(index.columns))});"
        ]

    def _drop_index(self, change: DropIndexChange) -> list[str]:
        return [f"DROP INDEX {_qualified_index_name(change.index)};"]

    def _add_constraint(self, change: AddConstraintChange) -> list[str]:
        return [
            f"ALTER TABLE {quote_qualified(change.table_name)} "
            f"ADD CONSTRAINT {quote_ident(change.constraint.name)} "
            f"{change.constraint.definition};"
        ]

    def _drop_constraint(self, change: DropConstraintChange) -> list[str]:
        return [
            f"ALTER TABLE {quote_qualified(change.table_name)} "
            f"DROP CONSTRAINT {quote_ident(change.constraint.name)};"
        ]

    # ------------------------------------------------------------------
    # Enums
    # ------------------------------------------------------------------

    def _create_enum(self, change: CreateEnumChange) -> list[str]:
        values = ", ".join(quote_literal(v) for v in change.enum.values)
        return [f"CREATE TYPE {quote_qualified(change.enum.full_name)} AS ENUM ({values});"]

    def _drop_enum(self, change: DropEnumChange) -> list[str]:
        return [f"DROP TYPE {quote_qualified(change.enum.full_name)};"]

    def _add_enum_value(self, change: AddEnumValueChange) -> list[str]:
        sql = (
            f"ALTER TYPE {quote_qualified(change.enum_name)} "
            f"ADD VALUE {quote_literal(change.value)}"
        )
        if change.after:
            sql += f" AFTER {quote_literal(change.after)}"
        return [sql + ";"]

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def _create_function(self, change: CreateFunctionChange) -> list[str]:
        return [_terminate(change.function.definition)]

    def _drop_function(self, change: DropFunctionChange) -> list[str]:
        function = change.function
        return [f"DROP FUNCTION {_qualified_function_name(function)}({_drop_arguments(function)});"]

    def _replace_function(self, change: ReplaceFunctionChange) -> list[str]:
        definition = change.new_function.definition
        if definition.startswith("CREATE FUNCTION"):
            definition = "CREATE OR REPLACE" + definition[len("CREATE"):]
        return [_terminate(definition)]


def _qualified_index_name(index: IndexSchema) -> str:
    # Indexes live in their table's schema
    if "." in index.table_name:
        schema_name = index.table_name.split(".", 1)[0]
        return f"{quote_ident(schema_name)}.{quote_ident(index.name)}"
    return quote_ident(index.name)


def _qualified_function_name(function: FunctionSchema) -> str:
    if function.schema_name and function.schema_name != "public":
        return f"{quote_ident(function.schema_name)}.{quote_ident(function.name)}"
    return quote_ident(function.name)


def _split_arguments(arguments: str) -> list[str]:
    """Split an argument list on top-level commas."""
    parts: list[str] = []
    depth = 0
    quote = ""
    start = 0
    for i, ch in enumerate(arguments):
        if quote:
            if ch == quote:
                quote = ""
        elif ch in "'\"":
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(arguments[start:i])
            start = i + 1
    parts.append(arguments[start:])
    return [p.strip() for p in parts if p.strip()]


def strip_argument_defaults(arguments: str) -> str:
    """Drop ``DEFAULT`` / ``=`` clauses from a function argument list.

    Example:
        >>> strip_argument_defaults("a integer, b text DEFAULT 'x, y'")
        'a integer, b text'
    """
    return ", ".join(
        _DEFAULT_CLAUSE.split(arg, maxsplit=1)[0] for arg in _split_arguments(arguments)
    )


def _drop_arguments(function: FunctionSchema) -> str:
    return function.identity_arguments or strip_argument_defaults(function.arguments)
