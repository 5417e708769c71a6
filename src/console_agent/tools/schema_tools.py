"""Database schema introspection for the SQLite database the application uses."""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class SchemaTools:
    """``list_tables`` / ``describe_table`` over one SQLite file (opened read-only)."""

    def __init__(self, database_path: str | Path | None):
        self.database_path = Path(database_path) if database_path else None

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(f"file:{self.database_path}?mode=ro", uri=True)

    def _unavailable(self) -> str | None:
        if self.database_path is None:
            return "No database configured (set CONSOLE_AGENT_DATABASE_PATH)."
        if not self.database_path.is_file():
            return f"Database '{self.database_path}' not found."
        return None

    @staticmethod
    def _table_names(conn: sqlite3.Connection) -> List[str]:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        ).fetchall()
        return [row[0] for row in rows]

    def list_tables(self) -> str:
        """Comma-separated table names."""
        problem = self._unavailable()
        if problem:
            return problem
        try:
            with closing(self._connect()) as conn:
                tables = self._table_names(conn)
        except sqlite3.Error as exc:
            return f"Error listing tables: {exc}"
        return ", ".join(tables) if tables else "No tables found."

    def describe_table(self, table_name: str | None) -> str:
        """Columns (type, nullability, default, primary key) and indexes of *table_name*."""
        problem = self._unavailable()
        if problem:
            return problem
        if not table_name or not table_name.strip():
            return "Error: table_name is required."
        table_name = table_name.strip()

        try:
            with closing(self._connect()) as conn:
                if table_name not in self._table_names(conn):
                    return (
                        f"Table '{table_name}' not found. Use list_tables to see available tables."
                    )
                columns = conn.execute(f"PRAGMA table_info({_quote(table_name)})").fetchall()
                indexes = conn.execute(f"PRAGMA index_list({_quote(table_name)})").fetchall()
                index_columns = {
                    idx[1]: [
                        col[2]
                        for col in conn.execute(f"PRAGMA index_info({_quote(idx[1])})").fetchall()
                    ]
                    for idx in indexes
                }
        except sqlite3.Error as exc:
            return f"Error describing table '{table_name}': {exc}"

        lines = [f"Table: {table_name}", "Columns:"]
        for _cid, name, col_type, notnull, default, pk in columns:
            parts = [f"{name}:{col_type or 'ANY'}"]
            if pk:
                parts.append("primary_key")
            if not notnull:
                parts.append("nullable")
            if default is not None:
                parts.append(f"default={default}")
            lines.append("  " + " ".join(parts))
        if indexes:
            lines.append("Indexes:")
            for idx in indexes:
                unique = "UNIQUE " if idx[2] else ""
                lines.append(f"  {unique}INDEX on ({', '.join(index_columns[idx[1]])})")
        return "\n".join(lines)
