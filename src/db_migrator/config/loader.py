"""Load database configuration from db.toml."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_migrator.config.models import (
    DatabaseConfig,
    DatabaseProfile,
    IntrospectionSettings,
    MigrationSettings,
)


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ``db.toml`` in the current
            working directory)

    Returns:
        DatabaseConfig with all profiles and settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create a db.toml with at least one [profiles.<name>] section."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = DatabaseProfile(**profile_data)

        return DatabaseConfig(
            profiles=profiles,
            migrations=MigrationSettings(**data.get("migrations", {})),
            introspection=IntrospectionSettings(**data.get("introspection", {})),
        )
    except (ValidationError, TypeError) as e:
        raise ValueError(f"Invalid database config {config_path}: {e}") from e
