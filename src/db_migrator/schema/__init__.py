"""Schema models, diffing, ordering, validation, SQL generation and apply.

Pipeline: snapshot -> ``diff`` -> ``order_changes`` -> ``validate_changes``
-> ``SQLGenerator`` / ``Applier``.

Usage:
    from db_migrator.schema import diff, order_changes, SQLGenerator
    from db_migrator.schema import SchemaIntrospector, load_snapshot
"""

from db_migrator.schema.applier import (
    Applier,
    ApplyError,
    ApplyResult,
    ChangeError,
    ChangeRenderError,
)
from db_migrator.schema.changes import (
    Change,
    ChangeSet,
    ChangeType,
    ColumnAlteration,
    DiffStat,
)
from db_migrator.schema.differ import diff
from db_migrator.schema.introspector import SchemaIntrospector
from db_migrator.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    DatabaseSchema,
    EnumSchema,
    FunctionSchema,
    IndexSchema,
    TableSchema,
)
from db_migrator.schema.orderer import CHANGE_ORDER, order_changes
from db_migrator.schema.snapshot import load_snapshot, save_snapshot
from db_migrator.schema.sql import SQLGenerator, quote_ident, quote_literal
from db_migrator.schema.validator import ChangeValidationResult, validate_changes

__all__ = [
    "ColumnSchema",
    "IndexSchema",
    "ConstraintSchema",
    "ConstraintType",
    "EnumSchema",
    "FunctionSchema",
    "TableSchema",
    "DatabaseSchema",
    "Change",
    "ChangeSet",
    "ChangeType",
    "ColumnAlteration",
    "DiffStat",
    "diff",
    "CHANGE_ORDER",
    "order_changes",
    "ChangeValidationResult",
    "validate_changes",
    "SQLGenerator",
    "quote_ident",
    "quote_literal",
    "Applier",
    "ApplyError",
    "ApplyResult",
    "ChangeError",
    "ChangeRenderError",
    "SchemaIntrospector",
    "load_snapshot",
    "save_snapshot",
]
