"""Tests for schema snapshot models."""

import pytest
from pydantic import ValidationError

from db_migrator.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    DatabaseSchema,
    EnumSchema,
    FunctionSchema,
    IndexSchema,
    TableSchema,
    compute_body_hash,
)


# ============================================================================
# Test: ColumnSchema.full_type
# ============================================================================


class TestColumnFullType:
    """full_type is the canonical string used for type equality."""

    @pytest.mark.parametrize(
        "kwargs, expected",
        [
            ({"data_type": "text"}, "text"),
            ({"data_type": "varchar", "char_max_length": 255}, "varchar(255)"),
            ({"data_type": "character varying", "char_max_length": 40}, "varchar(40)"),
            ({"data_type": "char", "char_max_length": 2}, "char(2)"),
            ({"data_type": "numeric", "numeric_precision": 10, "numeric_scale": 2}, "numeric(10,2)"),
            ({"data_type": "numeric", "numeric_precision": 10, "numeric_scale": 0}, "numeric(10)"),
            ({"data_type": "decimal", "numeric_precision": 8}, "numeric(8)"),
            # information_schema reports precision for integers too
            ({"data_type": "int", "numeric_precision": 32, "numeric_scale": 0}, "int"),
            ({"data_type": "text", "is_array": True, "element_type": "text"}, "text[]"),
            (
                {"data_type": "varchar", "char_max_length": 20, "is_array": True},
                "varchar(20)[]",
            ),
        ],
    )
    def test_full_type(self, kwargs: dict, expected: str) -> None:
        assert ColumnSchema(name="c", **kwargs).full_type == expected

    def test_matches_compares_type_nullability_default(self) -> None:
        base = ColumnSchema(name="email", data_type="text", is_nullable=False)

        assert base.matches(ColumnSchema(name="email", data_type="text", is_nullable=False, position=7))
        assert not base.matches(ColumnSchema(name="email", data_type="varchar", is_nullable=False))
        assert not base.matches(ColumnSchema(name="email", data_type="text", is_nullable=True))
        assert not base.matches(
            ColumnSchema(name="email", data_type="text", is_nullable=False, default="''::text")
        )

    def test_models_are_frozen(self) -> None:
        col = ColumnSchema(name="email", data_type="text")
        with pytest.raises(ValidationError):
            col.name = "other"


# ============================================================================
# Test: Index / Constraint equality
# ============================================================================


class TestIndexAndConstraintMatching:

    def test_index_matches_ignores_definition_text(self) -> None:
        a = IndexSchema(name="idx", table_name="users", columns=["email"], definition="X")
        b = IndexSchema(name="idx", table_name="users", columns=["email"], definition="Y")
        assert a.matches(b)

    def test_index_column_order_matters(self) -> None:
        a = IndexSchema(name="idx", columns=["a", "b"])
        b = IndexSchema(name="idx", columns=["b", "a"])
        assert not a.matches(b)

    def test_index_method_matters(self) -> None:
        a = IndexSchema(name="idx", columns=["tags"])
        b = IndexSchema(name="idx", columns=["tags"], index_type="gin")
        assert not a.matches(b)

    def test_constraint_matches_on_definition(self) -> None:
        a = ConstraintSchema(
            name="age_check", constraint_type=ConstraintType.CHECK, definition="CHECK ((age > 0))"
        )
        b = a.model_copy(update={"definition": "CHECK ((age >= 0))"})
        assert a.matches(a.model_copy())
        assert not a.matches(b)

    def test_constraint_type_values(self) -> None:
        assert ConstraintType("PRIMARY KEY") is ConstraintType.PRIMARY_KEY
        assert ConstraintType.FOREIGN_KEY.value == "FOREIGN KEY"


# ============================================================================
# Test: Functions
# ============================================================================


class TestFunctionSchema:

    def test_body_hash_of_empty_string(self) -> None:
        # First 8 bytes of sha256("")
        assert compute_body_hash("") == "e3b0c44298fc1c14"

    def test_body_hash_filled_from_definition(self) -> None:
        fn = FunctionSchema(name="f", definition="CREATE FUNCTION f() ...")
        assert fn.body_hash == compute_body_hash("CREATE FUNCTION f() ...")
        assert len(fn.body_hash) == 16

    def test_explicit_body_hash_kept(self) -> None:
        fn = FunctionSchema(name="f", definition="body", body_hash="deadbeefdeadbeef")
        assert fn.body_hash == "deadbeefdeadbeef"

    def test_signature_and_full_name(self) -> None:
        fn = FunctionSchema(name="add", schema_name="math", arguments="a integer, b integer")
        assert fn.signature == "add(a integer, b integer)"
        assert fn.full_name == "math.add(a integer, b integer)"
        assert FunctionSchema(name="now_utc").full_name == "now_utc()"

    def test_matches_detects_body_change(self) -> None:
        a = FunctionSchema(name="f", return_type="integer", definition="SELECT 1")
        b = FunctionSchema(name="f", return_type="integer", definition="SELECT 2")
        assert a.matches(FunctionSchema(name="f", return_type="integer", definition="SELECT 1"))
        assert not a.matches(b)

    def test_matches_detects_return_type_change(self) -> None:
        a = FunctionSchema(name="f", return_type="integer", definition="x")
        b = FunctionSchema(name="f", return_type="bigint", definition="x")
        assert not a.matches(b)


# ============================================================================
# Test: Tables and databases
# ============================================================================


class TestTableSchema:

    def test_full_name_omits_public(self) -> None:
        assert TableSchema(name="users").full_name == "users"
        assert TableSchema(name="users", schema_name="auth").full_name == "auth.users"
        assert EnumSchema(name="status", schema_name="app").full_name == "app.status"

    def test_duplicate_positions_rejected(self) -> None:
        with pytest.raises(ValueError, match="share position 1"):
            TableSchema(
                name="users",
                columns={
                    "id": ColumnSchema(name="id", data_type="int", position=1),
                    "email": ColumnSchema(name="email", data_type="text", position=1),
                },
            )

    def test_unpositioned_columns_allowed(self) -> None:
        table = TableSchema(
            name="users",
            columns={
                "b": ColumnSchema(name="b", data_type="text"),
                "a": ColumnSchema(name="a", data_type="text"),
            },
        )
        assert [c.name for c in table.sorted_columns()] == ["a", "b"]

    def test_sorted_columns_by_position(self) -> None:
        table = TableSchema(
            name="users",
            columns={
                "email": ColumnSchema(name="email", data_type="text", position=2),
                "id": ColumnSchema(name="id", data_type="int", position=1),
                "name": ColumnSchema(name="name", data_type="text", position=3),
            },
        )
        assert [c.name for c in table.sorted_columns()] == ["id", "email", "name"]

    def test_sorted_helpers_on_database(self) -> None:
        db = DatabaseSchema(
            tables={"users": TableSchema(name="users"), "accounts": TableSchema(name="accounts")},
            enums={"status": EnumSchema(name="status"), "mood": EnumSchema(name="mood")},
        )
        assert [t.name for t in db.sorted_tables()] == ["accounts", "users"]
        assert [e.name for e in db.sorted_enums()] == ["mood", "status"]
        assert db.sorted_functions() == []
