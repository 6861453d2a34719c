"""Tests for DDL generation."""

from datetime import datetime, timezone

import pytest

from db_migrator.schema.changes import (
    AddColumnChange,
    AddConstraintChange,
    AddEnumValueChange,
    AlterColumnChange,
    BaseChange,
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
from db_migrator.schema.differ import compute_column_alteration
from db_migrator.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    EnumSchema,
    FunctionSchema,
    IndexSchema,
    TableSchema,
)
from db_migrator.schema.sql import (
    ChangeRenderError,
    SQLGenerator,
    quote_ident,
    quote_literal,
    quote_qualified,
    strip_argument_defaults,
)

STATUS = EnumSchema(name="status", values=["pending", "active"])


class UnknownChange(BaseChange):
    """A variant the generator has no renderer for."""

    @property
    def description(self) -> str:
        return "Mystery change"


@pytest.fixture
def gen() -> SQLGenerator:
    return SQLGenerator()


def _alter(old: ColumnSchema, new: ColumnSchema) -> AlterColumnChange:
    return AlterColumnChange(
        table_name="users",
        column_name=new.name,
        old_column=old,
        new_column=new,
        alteration=compute_column_alteration(old, new),
    )


# ============================================================================
# Test: Quoting
# ============================================================================


class TestQuoting:

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("users", "users"),
            ("user_id", "user_id"),
            ("_tmp2", "_tmp2"),
            ("User", '"User"'),
            ("order", '"order"'),
            ("user", '"user"'),
            ("1abc", '"1abc"'),
            ("my table", '"my table"'),
            ('a"b', '"a""b"'),
        ],
    )
    def test_quote_ident(self, name: str, expected: str) -> None:
        assert quote_ident(name) == expected

    def test_quote_qualified(self) -> None:
        assert quote_qualified("Billing.invoices") == '"Billing".invoices'
        assert quote_qualified("users") == "users"

    def test_quote_literal(self) -> None:
        assert quote_literal("it's") == "'it''s'"


# ============================================================================
# Test: Tables and columns
# ============================================================================


class TestTableAndColumnSQL:

    def test_add_column(self, gen: SQLGenerator) -> None:
        change = AddColumnChange(
            table_name="users",
            column=ColumnSchema(name="email", data_type="text", is_nullable=False),
        )
        assert gen.generate_change(change) == "ALTER TABLE users ADD COLUMN email text NOT NULL;"

    def test_add_column_with_default_and_reserved_name(self, gen: SQLGenerator) -> None:
        change = AddColumnChange(
            table_name="orders",
            column=ColumnSchema(name="order", data_type="int", default="0"),
        )
        assert gen.generate_change(change) == 'ALTER TABLE orders ADD COLUMN "order" int DEFAULT 0;'

    def test_drop_column(self, gen: SQLGenerator) -> None:
        change = DropColumnChange(table_name="users", column=ColumnSchema(name="bio", data_type="text"))
        assert gen.generate_change(change) == "ALTER TABLE users DROP COLUMN bio;"

    def test_drop_table_schema_qualified(self, gen: SQLGenerator) -> None:
        change = DropTableChange(table=TableSchema(name="events", schema_name="audit"))
        assert gen.generate_change(change) == "DROP TABLE audit.events;"

    def test_create_table_with_constraints(self, gen: SQLGenerator) -> None:
        table = TableSchema(
            name="users",
            columns={
                "email": ColumnSchema(name="email", data_type="text", position=2),
                "id": ColumnSchema(name="id", data_type="int", is_nullable=False, position=1),
            },
            constraints={
                "users_email_key": ConstraintSchema(
                    name="users_email_key", constraint_type=ConstraintType.UNIQUE,
                    definition="UNIQUE (email)",
                ),
                "users_pkey": ConstraintSchema(
                    name="users_pkey", constraint_type=ConstraintType.PRIMARY_KEY,
                    definition="PRIMARY KEY (id)",
                ),
                "a_check": ConstraintSchema(
                    name="a_check", constraint_type=ConstraintType.CHECK,
                    definition="CHECK ((id > 0))",
                ),
            },
        )

        statements = gen.generate_statements(CreateTableChange(table=table))

        assert statements == [
            "CREATE TABLE users (\n    id int NOT NULL,\n    email text\n);",
            "ALTER TABLE users ADD CONSTRAINT users_pkey PRIMARY KEY (id);",
            "ALTER TABLE users ADD CONSTRAINT a_check CHECK ((id > 0));",
            "ALTER TABLE users ADD CONSTRAINT users_email_key UNIQUE (email);",
        ]

    def test_alter_column_emits_one_statement_per_attribute(self, gen: SQLGenerator) -> None:
        change = _alter(
            ColumnSchema(name="id", data_type="int"),
            ColumnSchema(name="id", data_type="bigint", is_nullable=False, default="0"),
        )
        assert gen.generate_statements(change) == [
            "ALTER TABLE users ALTER COLUMN id TYPE bigint;",
            "ALTER TABLE users ALTER COLUMN id SET NOT NULL;",
            "ALTER TABLE users ALTER COLUMN id SET DEFAULT 0;",
        ]

    def test_alter_column_relax_and_drop_default(self, gen: SQLGenerator) -> None:
        change = _alter(
            ColumnSchema(name="email", data_type="text", is_nullable=False, default="''::text"),
            ColumnSchema(name="email", data_type="text"),
        )
        assert gen.generate_statements(change) == [
            "ALTER TABLE users ALTER COLUMN email DROP NOT NULL;",
            "ALTER TABLE users ALTER COLUMN email DROP DEFAULT;",
        ]


# ============================================================================
# Test: Indexes and constraints
# ============================================================================


class TestIndexAndConstraintSQL:

    def test_create_index_uses_stored_definition(self, gen: SQLGenerator) -> None:
        index = IndexSchema(
            name="idx_users_email", table_name="users", columns=["email"],
            definition="CREATE INDEX idx_users_email ON public.users USING btree (email)",
        )
        assert gen.generate_change(CreateIndexChange(index=index)) == (
            "CREATE INDEX idx_users_email ON public.users USING btree (email);"
        )

    def test_create_index_synthesized(self, gen: SQLGenerator) -> None:
        unique = IndexSchema(name="idx_email", table_name="users", columns=["email"], is_unique=True)
        gin = IndexSchema(name="idx_tags", table_name="posts", columns=["tags"], index_type="gin")

        assert gen.generate_change(CreateIndexChange(index=unique)) == (
            "CREATE UNIQUE INDEX idx_email ON users (email);"
        )
        assert gen.generate_change(CreateIndexChange(index=gin)) == (
            "CREATE INDEX idx_tags ON posts USING gin (tags);"
        )

    def test_drop_index(self, gen: SQLGenerator) -> None:
        plain = IndexSchema(name="idx_email", table_name="users")
        qualified = IndexSchema(name="idx_kind", table_name="audit.events")
        assert gen.generate_change(DropIndexChange(index=plain)) == "DROP INDEX idx_email;"
        assert gen.generate_change(DropIndexChange(index=qualified)) == "DROP INDEX audit.idx_kind;"

    def test_add_and_drop_constraint(self, gen: SQLGenerator) -> None:
        fk = ConstraintSchema(
            name="orders_user_fk", constraint_type=ConstraintType.FOREIGN_KEY,
            definition="FOREIGN KEY (user_id) REFERENCES users(id)",
        )
        assert gen.generate_change(AddConstraintChange(table_name="orders", constraint=fk)) == (
            "ALTER TABLE orders ADD CONSTRAINT orders_user_fk "
            "FOREIGN KEY (user_id) REFERENCES users(id);"
        )
        assert gen.generate_change(DropConstraintChange(table_name="orders", constraint=fk)) == (
            "ALTER TABLE orders DROP CONSTRAINT orders_user_fk;"
        )


# ============================================================================
# Test: Enums and functions
# ============================================================================


class TestEnumAndFunctionSQL:

    def test_create_enum(self, gen: SQLGenerator) -> None:
        assert gen.generate_change(CreateEnumChange(enum=STATUS)) == (
            "CREATE TYPE status AS ENUM ('pending', 'active');"
        )

    def test_drop_enum(self, gen: SQLGenerator) -> None:
        assert gen.generate_change(DropEnumChange(enum=STATUS)) == "DROP TYPE status;"

    def test_add_enum_value(self, gen: SQLGenerator) -> None:
        anchored = AddEnumValueChange(enum_name="status", value="deleted", after="active")
        assert gen.generate_change(anchored) == "ALTER TYPE status ADD VALUE 'deleted' AFTER 'active';"
        plain = AddEnumValueChange(enum_name="status", value="o'neil")
        assert gen.generate_change(plain) == "ALTER TYPE status ADD VALUE 'o''neil';"

    def test_create_function_terminated(self, gen: SQLGenerator) -> None:
        fn = FunctionSchema(name="one", definition="CREATE FUNCTION one() RETURNS int AS $$ SELECT 1 $$ LANGUAGE sql\n")
        assert gen.generate_change(CreateFunctionChange(function=fn)) == (
            "CREATE FUNCTION one() RETURNS int AS $$ SELECT 1 $$ LANGUAGE sql;"
        )

    def test_replace_function_rewrites_create(self, gen: SQLGenerator) -> None:
        old = FunctionSchema(name="one", definition="x")
        new = FunctionSchema(name="one", definition="CREATE FUNCTION one() RETURNS int AS $$ SELECT 2 $$ LANGUAGE sql")
        assert gen.generate_change(ReplaceFunctionChange(old_function=old, new_function=new)) == (
            "CREATE OR REPLACE FUNCTION one() RETURNS int AS $$ SELECT 2 $$ LANGUAGE sql;"
        )

    def test_replace_function_keeps_create_or_replace(self, gen: SQLGenerator) -> None:
        new = FunctionSchema(name="one", definition="CREATE OR REPLACE FUNCTION one() RETURNS int AS $$ SELECT 2 $$ LANGUAGE sql;")
        change = ReplaceFunctionChange(old_function=new, new_function=new)
        assert gen.generate_change(change) == new.definition

    def test_drop_function(self, gen: SQLGenerator) -> None:
        fn = FunctionSchema(name="add", arguments="a integer, b integer")
        assert gen.generate_change(DropFunctionChange(function=fn)) == (
            "DROP FUNCTION add(a integer, b integer);"
        )
        qualified = FunctionSchema(name="now_utc", schema_name="util")
        assert gen.generate_change(DropFunctionChange(function=qualified)) == "DROP FUNCTION util.now_utc();"

    def test_drop_function_omits_argument_defaults(self, gen: SQLGenerator) -> None:
        fn = FunctionSchema(name="f", arguments="a integer DEFAULT 0")
        assert gen.generate_change(DropFunctionChange(function=fn)) == "DROP FUNCTION f(a integer);"

    def test_drop_function_prefers_identity_arguments(self, gen: SQLGenerator) -> None:
        fn = FunctionSchema(
            name="greet",
            arguments="name text, greeting text DEFAULT 'hello'::text",
            identity_arguments="name text, greeting text",
        )
        assert gen.generate_change(DropFunctionChange(function=fn)) == (
            "DROP FUNCTION greet(name text, greeting text);"
        )


class TestStripArgumentDefaults:

    @pytest.mark.parametrize(
        "arguments, expected",
        [
            ("", ""),
            ("a integer, b integer", "a integer, b integer"),
            ("a integer DEFAULT 0", "a integer"),
            ("a integer = 0", "a integer"),
            ("sep text DEFAULT ', '::text, n integer", "sep text, n integer"),
            ("ids integer[] DEFAULT ARRAY[1, 2], flag boolean default true", "ids integer[], flag boolean"),
            ("default_value integer", "default_value integer"),
            ("OUT total numeric", "OUT total numeric"),
        ],
    )
    def test_strip(self, arguments: str, expected: str) -> None:
        assert strip_argument_defaults(arguments) == expected


# ============================================================================
# Test: Assembly
# ============================================================================


class TestGenerate:

    def test_unknown_variant_renders_nothing(self, gen: SQLGenerator) -> None:
        assert gen.generate_statements(UnknownChange()) == []
        assert gen.generate_change(UnknownChange()) == ""

    def test_generate_rejects_unrenderable_change(self, gen: SQLGenerator) -> None:
        cs = ChangeSet(changes=[CreateEnumChange(enum=STATUS), UnknownChange()])
        with pytest.raises(ChangeRenderError, match="Mystery change") as exc_info:
            gen.generate(cs)
        assert exc_info.value.change == UnknownChange()

    def test_migration_file_rejects_unrenderable_change(self, gen: SQLGenerator) -> None:
        cs = ChangeSet(changes=[CreateEnumChange(enum=STATUS), UnknownChange()])
        with pytest.raises(ChangeRenderError):
            gen.generate_migration_file(cs)

    def test_generate_with_comments(self, gen: SQLGenerator) -> None:
        cs = ChangeSet(changes=[DropTableChange(table=TableSchema(name="users"))])
        assert gen.generate(cs) == ["-- Drop table users (DESTRUCTIVE)", "DROP TABLE users;"]

    def test_generate_without_comments(self) -> None:
        cs = ChangeSet(changes=[CreateEnumChange(enum=STATUS)])
        assert SQLGenerator(include_comments=False).generate(cs) == [
            "CREATE TYPE status AS ENUM ('pending', 'active');"
        ]

    def test_migration_file_layout(self, gen: SQLGenerator) -> None:
        cs = ChangeSet(changes=[
            CreateEnumChange(enum=STATUS),
            DropTableChange(table=TableSchema(name="legacy")),
        ])
        generated_at = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        content = gen.generate_migration_file(cs, "Merge feature -> main", generated_at)

        assert content == (
            "-- Migration generated by db-migrator\n"
            "-- Generated at: 2024-01-02T03:04:05+00:00\n"
            "-- Description: Merge feature -> main\n"
            "\n"
            "-- Changes:\n"
            "--   CREATE_ENUM: 1\n"
            "--   DROP_TABLE: 1\n"
            "\n"
            "-- WARNING: This migration contains 1 destructive change(s)\n"
            "\n"
            "BEGIN;\n"
            "\n"
            "-- Create enum status\n"
            "CREATE TYPE status AS ENUM ('pending', 'active');\n"
            "\n"
            "-- Drop table legacy (DESTRUCTIVE)\n"
            "DROP TABLE legacy;\n"
            "\n"
            "COMMIT;\n"
        )

    def test_migration_file_without_description_or_destructive(self) -> None:
        gen = SQLGenerator(include_comments=False, tool_name="acme")
        cs = ChangeSet(changes=[CreateEnumChange(enum=STATUS)])

        content = gen.generate_migration_file(cs, generated_at=datetime(2024, 1, 2, tzinfo=timezone.utc))

        assert content.startswith("-- Migration generated by acme\n")
        assert "-- Description" not in content
        assert "WARNING" not in content
        assert content.endswith(
            "BEGIN;\n\nCREATE TYPE status AS ENUM ('pending', 'active');\n\nCOMMIT;\n"
        )
