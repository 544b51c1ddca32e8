"""Text column discovery via information_schema.

Finds every column that can hold free text (``text``, ``character
varying``, ``character``) in the user tables of one schema, along with
the declared maximum length that remapping must respect.

Uses psycopg (v3) ``AsyncConnection`` for PostgreSQL connections.
"""

import psycopg

from site_backup.adapters.models import TextColumn


class TextColumnIntrospector:
    """Introspects text-bearing columns of a PostgreSQL schema.

    Usage:
        async with TextColumnIntrospector(database_url) as introspector:
            columns = await introspector.text_columns("public")
    """

    # Tables never remapped (bookkeeping and extension tables)
    EXCLUDED_TABLES = {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    TEXT_DATA_TYPES = ("text", "character varying", "character")

    def __init__(
        self,
        database_url: str,
        excluded_tables: set[str] | None = None,
        connect_timeout: int = 10,
    ):
        self._database_url = database_url
        self._excluded = self.EXCLUDED_TABLES | (excluded_tables or set())
        self._connect_timeout = connect_timeout
        self._conn: psycopg.AsyncConnection | None = None

    async def __aenter__(self) -> "TextColumnIntrospector":
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def text_columns(self, schema_name: str = "public") -> dict[str, list[TextColumn]]:
        """Return text columns keyed by table name, tables in name order.

        Args:
            schema_name: PostgreSQL schema to query (default: public)
        """
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")

        query = """
            SELECT
                c.table_name,
                c.column_name,
                c.character_maximum_length
            FROM information_schema.columns c
            JOIN information_schema.tables t
                ON t.table_schema = c.table_schema
                AND t.table_name = c.table_name
            WHERE c.table_schema = %s
              AND t.table_type = 'BASE TABLE'
              AND c.data_type = ANY(%s)
            ORDER BY c.table_name, c.ordinal_position
        """
        result: dict[str, list[TextColumn]] = {}
        async with self._conn.cursor() as cur:
            await cur.execute(query, (schema_name, list(self.TEXT_DATA_TYPES)))
            for table_name, column_name, max_length in await cur.fetchall():
                if table_name in self._excluded:
                    continue
                result.setdefault(table_name, []).append(
                    TextColumn(table=table_name, name=column_name, max_length=max_length)
                )
        return result
