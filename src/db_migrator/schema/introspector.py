"""PostgreSQL schema introspection via information_schema and pg_catalog.

This module queries the live database to build a ``DatabaseSchema``:
- Tables, columns, data types, nullability, defaults
- Indexes (name, columns, uniqueness, method, definition)
- Constraints (primary key, foreign key, unique, check, exclusion)
- Enum types with their labels in declaration order
- Functions and procedures (signature, return type, definition)

Every user schema is covered; ``pg_catalog``, ``information_schema``,
``pg_toast`` and temporary schemas are skipped.

Uses psycopg (v3) async connections.
"""

import logging

import psycopg
from psycopg import AsyncConnection

from db_migrator.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    DatabaseSchema,
    EnumSchema,
    FunctionSchema,
    IndexSchema,
    TableSchema,
    qualify_name,
)

logger = logging.getLogger(__name__)


def _not_system(col: str) -> str:
    """WHERE fragment excluding system and temporary schemas."""
    return (
        f"{col} NOT IN ('pg_catalog', 'information_schema', 'pg_toast') "
        f"AND {col} NOT LIKE 'pg_temp_%' "
        f"AND {col} NOT LIKE 'pg_toast_temp_%'"
    )


class SchemaIntrospector:
    """Introspects PostgreSQL database schema.

    Works with any PostgreSQL database (RDS, Supabase, local).

    Args:
        database_url: PostgreSQL connection URL.
        excluded_tables: Table names to skip.  Defaults to
            ``EXCLUDED_TABLES_DEFAULT``.
        connect_timeout: Connection timeout in seconds.

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            schema = await introspector.introspect("main")
    """

    # Bookkeeping and extension tables that are not part of an app schema
    EXCLUDED_TABLES_DEFAULT: set[str] = {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    def __init__(
        self,
        database_url: str,
        excluded_tables: set[str] | None = None,
        connect_timeout: int = 10,
    ) -> None:
        self._database_url = database_url
        self._excluded_tables = (
            set(excluded_tables) if excluded_tables is not None else set(self.EXCLUDED_TABLES_DEFAULT)
        )
        self._connect_timeout = connect_timeout
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Async context manager entry - opens connection."""
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_connection(self) -> AsyncConnection:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use 'async with' statement.")
        return self._conn

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` on the open connection.

        Returns:
            True if the query succeeds.

        Raises:
            RuntimeError: If not connected.
            ConnectionError: If the query fails.
        """
        conn = self._require_connection()
        try:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                row = await cur.fetchone()
                return row is not None and row[0] == 1
        except psycopg.Error as e:
            raise ConnectionError(f"Connection test failed: {e}") from e

    async def introspect(self, name: str = "") -> DatabaseSchema:
        """Introspect the full database schema.

        Args:
            name: Label stored on the returned snapshot.

        Returns:
            DatabaseSchema with all tables, enums and functions.
        """
        self._require_connection()

        enums = {e.full_name: e for e in await self._get_enums()}

        tables: dict[str, TableSchema] = {}
        for schema_name, table_name in await self._get_tables():
            if table_name in self._excluded_tables:
                continue
            table = TableSchema(
                name=table_name,
                schema_name=schema_name,
                columns=await self._get_columns(schema_name, table_name),
                indexes=await self._get_indexes(schema_name, table_name),
                constraints=await self._get_constraints(schema_name, table_name),
            )
            tables[table.full_name] = table

        functions = {f.full_name: f for f in await self._get_functions()}

        logger.debug(
            "Introspected %d table(s), %d enum(s), %d function(s)",
            len(tables), len(enums), len(functions),
        )
        return DatabaseSchema(name=name, tables=tables, enums=enums, functions=functions)

    # ------------------------------------------------------------------
    # Tables and columns
    # ------------------------------------------------------------------

    async def _get_tables(self) -> list[tuple[str, str]]:
        """(schema, table) pairs for every base table."""
        query = f"""
            SELECT table_schema, table_name
            FROM information_schema.tables
            WHERE {_not_system("table_schema")}
              AND table_type = 'BASE TABLE'
            ORDER BY table_schema, table_name
        """
        async with self._require_connection().cursor() as cur:
            await cur.execute(query)
            return [(row[0], row[1]) for row in await cur.fetchall()]

    async def _get_columns(self, schema_name: str, table_name: str) -> dict[str, ColumnSchema]:
        query = """
            SELECT
                column_name,
                data_type,
                is_nullable,
                column_default,
                ordinal_position,
                character_maximum_length,
                numeric_precision,
                numeric_scale,
                udt_schema,
                udt_name
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
        """
        async with self._require_connection().cursor() as cur:
            await cur.execute(query, (schema_name, table_name))
            columns = {}
            for row in await cur.fetchall():
                (
                    col_name,
                    data_type,
                    is_nullable,
                    default,
                    position,
                    char_max_length,
                    numeric_precision,
                    numeric_scale,
                    udt_schema,
                    udt_name,
                ) = row

                is_array = data_type == "ARRAY"
                element_type = ""
                if is_array:
                    # Array udt names carry a leading underscore: _int4, _text
                    element_type = self._normalize_data_type(udt_name.removeprefix("_"))
                    data_type = element_type
                elif data_type == "USER-DEFINED":
                    data_type = qualify_name(udt_schema, udt_name)
                else:
                    data_type = self._normalize_data_type(data_type)

                columns[col_name] = ColumnSchema(
                    name=col_name,
                    data_type=data_type,
                    is_nullable=(is_nullable == "YES"),
                    default=default,
                    position=position,
                    char_max_length=char_max_length,
                    numeric_precision=numeric_precision,
                    numeric_scale=numeric_scale,
                    is_array=is_array,
                    element_type=element_type,
                )
            return columns

    def _normalize_data_type(self, data_type: str) -> str:
        """Normalize PostgreSQL data type names.

        Maps verbose information_schema types to standard names.
        """
        type_map = {
            "character varying": "varchar",
            "character": "char",
            "timestamp with time zone": "timestamptz",
            "timestamp without time zone": "timestamp",
            "time with time zone": "timetz",
            "time without time zone": "time",
            "integer": "int",
            "boolean": "bool",
        }
        return type_map.get(data_type.lower(), data_type.lower())

    # ------------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------------

    async def _get_indexes(self, schema_name: str, table_name: str) -> dict[str, IndexSchema]:
        query = """
            SELECT
                i.relname AS index_name,
                am.amname AS index_type,
                ix.indisunique AS is_unique,
                ix.indisprimary AS is_primary,
                pg_get_indexdef(ix.indexrelid) AS definition,
                ARRAY(
                    SELECT a.attname::text
                    FROM unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord)
                    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
                    ORDER BY k.ord
                ) AS columns
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_am am ON am.oid = i.relam
            WHERE n.nspname = %s
              AND t.relname = %s
            ORDER BY i.relname
        """
        table_full_name = qualify_name(schema_name, table_name)
        async with self._require_connection().cursor() as cur:
            await cur.execute(query, (schema_name, table_name))
            indexes = {}
            for row in await cur.fetchall():
                name, idx_type, is_unique, is_primary, definition, columns = row
                indexes[name] = IndexSchema(
                    name=name,
                    table_name=table_full_name,
                    columns=list(columns),
                    is_unique=is_unique,
                    is_primary=is_primary,
                    index_type=idx_type,
                    definition=definition,
                )
            return indexes

    async def _get_constraints(
        self, schema_name: str, table_name: str
    ) -> dict[str, ConstraintSchema]:
        query = """
            SELECT
                con.conname AS constraint_name,
                CASE con.contype
                    WHEN 'p' THEN 'PRIMARY KEY'
                    WHEN 'f' THEN 'FOREIGN KEY'
                    WHEN 'u' THEN 'UNIQUE'
                    WHEN 'c' THEN 'CHECK'
                    WHEN 'x' THEN 'EXCLUDE'
                END AS constraint_type,
                pg_get_constraintdef(con.oid) AS definition,
                ARRAY(
                    SELECT a.attname::text
                    FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
                    JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
                    ORDER BY k.ord
                ) AS columns,
                frel.relname AS references_table,
                ARRAY(
                    SELECT a.attname::text
                    FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
                    JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.attnum
                    ORDER BY k.ord
                ) AS references_columns,
                CASE con.confdeltype
                    WHEN 'a' THEN 'NO ACTION'
                    WHEN 'r' THEN 'RESTRICT'
                    WHEN 'c' THEN 'CASCADE'
                    WHEN 'n' THEN 'SET NULL'
                    WHEN 'd' THEN 'SET DEFAULT'
                END AS on_delete,
                CASE con.confupdtype
                    WHEN 'a' THEN 'NO ACTION'
                    WHEN 'r' THEN 'RESTRICT'
                    WHEN 'c' THEN 'CASCADE'
                    WHEN 'n' THEN 'SET NULL'
                    WHEN 'd' THEN 'SET DEFAULT'
                END AS on_update
            FROM pg_constraint con
            JOIN pg_class t ON t.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            LEFT JOIN pg_class frel ON frel.oid = con.confrelid
            WHERE n.nspname = %s
              AND t.relname = %s
              AND con.contype IN ('p', 'f', 'u', 'c', 'x')
            ORDER BY con.conname
        """
        table_full_name = qualify_name(schema_name, table_name)
        async with self._require_connection().cursor() as cur:
            await cur.execute(query, (schema_name, table_name))
            constraints = {}
            for row in await cur.fetchall():
                (
                    name,
                    ctype,
                    definition,
                    columns,
                    ref_table,
                    ref_columns,
                    on_delete,
                    on_update,
                ) = row
                constraints[name] = ConstraintSchema(
                    name=name,
                    constraint_type=ConstraintType(ctype),
                    table_name=table_full_name,
                    columns=list(columns),
                    definition=definition,
                    references_table=ref_table,
                    references_columns=list(ref_columns) if ref_table else None,
                    on_delete=on_delete,
                    on_update=on_update,
                )
            return constraints

    # ------------------------------------------------------------------
    # Enums and functions
    # ------------------------------------------------------------------

    async def _get_enums(self) -> list[EnumSchema]:
        query = f"""
            SELECT
                t.typname AS enum_name,
                n.nspname AS enum_schema,
                ARRAY(
                    SELECT e.enumlabel::text
                    FROM pg_enum e
                    WHERE e.enumtypid = t.oid
                    ORDER BY e.enumsortorder
                ) AS enum_values
            FROM pg_type t
            JOIN pg_namespace n ON n.oid = t.typnamespace
            WHERE t.typtype = 'e'
              AND {_not_system("n.nspname")}
            ORDER BY n.nspname, t.typname
        """
        async with self._require_connection().cursor() as cur:
            await cur.execute(query)
            return [
                EnumSchema(name=name, schema_name=schema_name, values=list(values))
                for name, schema_name, values in await cur.fetchall()
            ]

    async def _get_functions(self) -> list[FunctionSchema]:
        """Get user-defined functions and procedures.

        Note: ``prokind IN ('f', 'p')`` keeps regular functions and
        procedures (PostgreSQL 11+), skipping aggregates and window
        functions.  Functions owned by an extension are skipped too.
        """
        query = f"""
            SELECT
                p.proname AS function_name,
                n.nspname AS function_schema,
                pg_get_function_arguments(p.oid) AS arguments,
                pg_get_function_identity_arguments(p.oid) AS identity_arguments,
                COALESCE(pg_get_function_result(p.oid), '') AS return_type,
                l.lanname AS language,
                pg_get_functiondef(p.oid) AS definition
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            JOIN pg_language l ON l.oid = p.prolang
            WHERE {_not_system("n.nspname")}
              AND p.prokind IN ('f', 'p')
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = p.oid AND d.deptype = 'e'
              )
            ORDER BY n.nspname, p.proname
        """
        async with self._require_connection().cursor() as cur:
            await cur.execute(query)
            return [
                FunctionSchema(
                    name=name,
                    schema_name=schema_name,
                    arguments=arguments,
                    identity_arguments=identity_arguments,
                    return_type=return_type,
                    language=language,
                    definition=definition,
                )
                for name, schema_name, arguments, identity_arguments, return_type, language, definition
                in await cur.fetchall()
            ]
