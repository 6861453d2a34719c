"""Pre-flight checks for a ChangeSet.

Flags changes likely to fail or lose data.  Findings are advisory: the
ChangeSet is never modified or rejected, callers decide whether to go on.

Usage:
    from db_migrator.schema.validator import validate_changes

    report = validate_changes(ordered)
    if report.has_errors:
        print(report.format_report())
"""

from pydantic import BaseModel, Field

from db_migrator.schema.changes import (
    AlterColumnChange,
    ChangeSet,
    DropColumnChange,
    DropTableChange,
)

# Best-effort type families, not a complete type lattice
NUMERIC_TYPES = frozenset({
    "integer", "int", "bigint", "smallint", "decimal", "numeric", "real", "double",
})
STRING_TYPES = frozenset({
    "text", "varchar", "character varying", "char", "character",
})


class ChangeValidationResult(BaseModel):
    """Warnings and error-level findings for a ChangeSet.

    Example:
        >>> result = ChangeValidationResult()
        >>> result.format_report()
        'No issues found'
    """

    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def format_report(self) -> str:
        """Format findings as a human-readable report."""
        if not self.warnings and not self.errors:
            return "No issues found"

        lines: list[str] = []
        if self.warnings:
            lines.append(f"Warnings ({len(self.warnings)}):")
            lines.extend(f"  - {w}" for w in self.warnings)
        if self.errors:
            if lines:
                lines.append("")
            lines.append(f"Potential issues ({len(self.errors)}):")
            lines.extend(f"  - {e}" for e in self.errors)
        return "\n".join(lines)


def _base_type(full_type: str) -> str:
    """``varchar(255)`` -> ``varchar``.  Arrays keep their ``[]`` suffix."""
    if full_type.endswith("[]"):
        return full_type
    return full_type.split("(", 1)[0].strip().lower()


def is_numeric_type(full_type: str) -> bool:
    return _base_type(full_type) in NUMERIC_TYPES


def is_string_type(full_type: str) -> bool:
    return _base_type(full_type) in STRING_TYPES


def validate_changes(cs: ChangeSet) -> ChangeValidationResult:
    """Inspect *cs* and collect advisory findings.

    Rules:
    - numeric -> string type change: warning
    - string -> numeric type change: error (fails on non-numeric data)
    - nullable -> NOT NULL: warning (fails on existing NULLs)
    - dropped column or table: data-loss warning

    Args:
        cs: ChangeSet to inspect, ordered or not.

    Returns:
        ``ChangeValidationResult`` with ``warnings`` and ``errors`` in
        ChangeSet order.
    """
    result = ChangeValidationResult()

    for change in cs:
        if isinstance(change, AlterColumnChange):
            alt = change.alteration
            if alt.type_changed:
                if is_numeric_type(alt.old_type) and is_string_type(alt.new_type):
                    result.warnings.append(
                        f"Changing {change.object_name} from {alt.old_type} to "
                        f"{alt.new_type} may lose precision"
                    )
                if is_string_type(alt.old_type) and is_numeric_type(alt.new_type):
                    result.errors.append(
                        f"Changing {change.object_name} from {alt.old_type} to "
                        f"{alt.new_type} may fail if data cannot be converted"
                    )

            if alt.nullable_changed and not alt.new_nullable:
                result.warnings.append(
                    f"Setting {change.object_name} to NOT NULL may fail if "
                    f"column contains NULL values"
                )

        elif isinstance(change, DropColumnChange):
            result.warnings.append(
                f"Dropping column {change.object_name} will permanently delete "
                f"all data in that column"
            )

        elif isinstance(change, DropTableChange):
            result.warnings.append(
                f"Dropping table {change.object_name} will permanently delete "
                f"all data in that table"
            )

    return result
