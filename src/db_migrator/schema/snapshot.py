"""JSON snapshot files for ``DatabaseSchema``.

A snapshot freezes a schema so it can be diffed later without a live
connection, or checked into version control.

File layout::

    {
      "metadata": {"created_at": "...", "version": "1.0", "name": "main"},
      "schema": { ...DatabaseSchema... }
    }

Usage:
    from db_migrator.schema.snapshot import load_snapshot, save_snapshot

    path = save_snapshot(schema, "snapshots/main.json")
    schema = load_snapshot(path)
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from db_migrator.schema.models import DatabaseSchema

SNAPSHOT_VERSION = "1.0"


def save_snapshot(
    schema: DatabaseSchema,
    output_path: str | Path | None = None,
    metadata: dict | None = None,
) -> str:
    """Write *schema* to a JSON snapshot file.

    Args:
        schema: Schema to save.
        output_path: Destination file.  When ``None``, generates a
            timestamped path under ``./snapshots/``.
        metadata: Optional extra metadata merged into the ``metadata``
            section.

    Returns:
        Path of the written file.

    Example:
        path = save_snapshot(schema, metadata={"branch": "feature-x"})
    """
    if output_path is None:
        timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
        label = schema.name or "schema"
        output_path = Path.cwd() / "snapshots" / f"{label}-{timestamp}.json"

    snapshot_data: dict[str, Any] = {
        "metadata": {
            "created_at": datetime.now().isoformat(),
            "version": SNAPSHOT_VERSION,
            "name": schema.name,
            "table_count": len(schema.tables),
            "enum_count": len(schema.enums),
            "function_count": len(schema.functions),
        },
        "schema": schema.model_dump(mode="json"),
    }

    # Merge caller-provided metadata
    if metadata:
        snapshot_data["metadata"].update(metadata)

    output_path_obj = Path(output_path)
    output_path_obj.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path_obj, "w") as f:
        json.dump(snapshot_data, f, indent=2, sort_keys=True)

    return str(output_path_obj)


def load_snapshot(snapshot_path: str | Path) -> DatabaseSchema:
    """Read a snapshot written by ``save_snapshot()``.

    Args:
        snapshot_path: Path to the snapshot JSON file.

    Returns:
        The validated ``DatabaseSchema``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON or not a snapshot.
    """
    with open(snapshot_path, "r") as f:
        try:
            snapshot_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid snapshot file {snapshot_path}: {e}") from e

    if not isinstance(snapshot_data, dict) or "schema" not in snapshot_data:
        raise ValueError(f"Invalid snapshot file {snapshot_path}: missing 'schema' section")

    version = snapshot_data.get("metadata", {}).get("version")
    if version != SNAPSHOT_VERSION:
        raise ValueError(
            f"Unsupported snapshot version {version!r} in {snapshot_path} "
            f"(expected {SNAPSHOT_VERSION!r})"
        )

    try:
        return DatabaseSchema.model_validate(snapshot_data["schema"])
    except ValidationError as e:
        raise ValueError(f"Invalid snapshot file {snapshot_path}: {e}") from e
