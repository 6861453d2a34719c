"""Pydantic models for db.toml configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class MigrationSettings(BaseModel):
    """``[migrations]`` section: where and how migration files are written."""

    directory: str = "migrations"
    include_comments: bool = True


class IntrospectionSettings(BaseModel):
    """``[introspection]`` section.

    ``excluded_tables`` of ``None`` keeps the introspector's default list.
    """

    excluded_tables: list[str] | None = None
    connect_timeout: int = 10


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)
    introspection: IntrospectionSettings = Field(default_factory=IntrospectionSettings)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_validate()."""

    success: bool
    profile_name: str | None = None
    previous_profile: str | None = None
    error: str | None = None
