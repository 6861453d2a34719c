"""Profile resolution and database object factory.

Profiles live in ``db.toml``.  The active profile comes from the
``<prefix>DB_PROFILE`` env var, falling back to the ``.db-profile`` lock
file written by a successful ``connect``.

Usage:
    from db_migrator.factory import get_adapter, load_schema

    current = await load_schema("main")
    desired = await load_schema("snapshots/feature.json")
    adapter = await get_adapter("main")
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from db_migrator.adapters.postgres import AsyncPostgresAdapter
from db_migrator.config.loader import load_db_config
from db_migrator.config.models import ConnectionResult, DatabaseConfig, DatabaseProfile
from db_migrator.schema.introspector import SchemaIntrospector
from db_migrator.schema.models import DatabaseSchema
from db_migrator.schema.snapshot import load_snapshot

logger = logging.getLogger(__name__)

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured or the name is unknown."""

    pass


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip() or None
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection test.

    Args:
        profile_name: Name of the connected profile
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. ``{env_prefix}DB_PROFILE`` env var
    2. .db-profile file (profile from previous connect)
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix for the env var (e.g. ``"APP_"`` reads
            ``APP_DB_PROFILE``).

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_var}=<name> db-migrator connect"
    )


def get_profile(profile_name: str, config: DatabaseConfig | None = None) -> DatabaseProfile:
    """Look up a profile by name.

    Args:
        profile_name: Profile name from db.toml
        config: Loaded config (default: ``load_db_config()``)

    Raises:
        ProfileNotFoundError: If the profile is not in db.toml
    """
    if config is None:
        config = load_db_config()

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {available}"
        )
    return config.profiles[profile_name]


def get_active_profile(
    env_prefix: str = "", config: DatabaseConfig | None = None
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured or it is unknown
    """
    profile_name = get_active_profile_name(env_prefix)
    return profile_name, get_profile(profile_name, config)


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted

    Example:
        >>> resolve_url(DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db",
        ...                             db_password="p@ss"))
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


# ============================================================================
# Connection
# ============================================================================


def _make_introspector(url: str, config: DatabaseConfig) -> SchemaIntrospector:
    settings = config.introspection
    excluded = set(settings.excluded_tables) if settings.excluded_tables is not None else None
    return SchemaIntrospector(
        url,
        excluded_tables=excluded,
        connect_timeout=settings.connect_timeout,
    )


async def connect_and_validate(
    profile_name: str | None = None,
    env_prefix: str = "",
    validate_only: bool = False,
    config: DatabaseConfig | None = None,
) -> ConnectionResult:
    """Check that a profile's database is reachable and remember it.

    On success the profile is written to the ``.db-profile`` lock file
    (unless ``validate_only``), making it the default for later commands.

    Args:
        profile_name: Profile name from db.toml.  If None, uses the
            ``{env_prefix}DB_PROFILE`` env var or the existing lock file.
        env_prefix: Prefix for the profile env var.
        validate_only: If True, test the connection without writing the
            lock file.
        config: Loaded config (default: ``load_db_config()``)

    Returns:
        ConnectionResult with success status or error message

    Example:
        >>> result = await connect_and_validate("main")
        >>> if result.success:
        ...     print(f"Connected to {result.profile_name}")
    """
    previous_profile = read_profile_lock()

    try:
        if profile_name is None:
            profile_name = get_active_profile_name(env_prefix)
        if config is None:
            config = load_db_config()
        profile = get_profile(profile_name, config)
    except (ProfileNotFoundError, FileNotFoundError, ValueError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    try:
        async with _make_introspector(resolve_url(profile), config) as introspector:
            await introspector.test_connection()
    except Exception as e:
        logger.debug("Connection to profile %s failed", profile_name, exc_info=True)
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Failed to connect to database: {e}",
        )

    if not validate_only:
        write_profile_lock(profile_name)

    return ConnectionResult(
        success=True,
        profile_name=profile_name,
        previous_profile=previous_profile,
    )


# ============================================================================
# Adapter and Schema Factories
# ============================================================================


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    config: DatabaseConfig | None = None,
) -> AsyncPostgresAdapter:
    """Create a database adapter for a profile or a direct URL.

    Each call creates a new adapter; the caller owns it and must
    ``await adapter.close()``.

    Args:
        profile_name: Profile name from db.toml.  If None, uses the
            active profile.
        env_prefix: Prefix for the profile env var.
        database_url: Direct connection URL.  Takes precedence over
            profiles.
        config: Loaded config (default: ``load_db_config()``)

    Raises:
        ProfileNotFoundError: If no profile can be resolved
    """
    if database_url is not None:
        return AsyncPostgresAdapter(database_url=database_url)

    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)
    profile = get_profile(profile_name, config)
    return AsyncPostgresAdapter(database_url=resolve_url(profile))


async def introspect_profile(
    profile_name: str, config: DatabaseConfig | None = None
) -> DatabaseSchema:
    """Introspect the live schema of a profile's database."""
    if config is None:
        config = load_db_config()
    profile = get_profile(profile_name, config)

    logger.debug("Introspecting profile %s", profile_name)
    async with _make_introspector(resolve_url(profile), config) as introspector:
        return await introspector.introspect(name=profile_name)


async def load_schema(source: str, config: DatabaseConfig | None = None) -> DatabaseSchema:
    """Load a schema from a snapshot file or a live profile.

    Args:
        source: Path to a ``.json`` snapshot, or a profile name.
        config: Loaded config, used for profile sources.

    Returns:
        The schema snapshot.

    Raises:
        FileNotFoundError: If a snapshot path does not exist
        ValueError: If a snapshot file is malformed
        ProfileNotFoundError: If a profile name is unknown
    """
    if source.endswith(".json"):
        logger.debug("Loading snapshot %s", source)
        return load_snapshot(source)
    return await introspect_profile(source, config)
