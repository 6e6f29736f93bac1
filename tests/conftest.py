import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

import anysqlite
import pytest


def format_value(value: Any, col_name: str, col_type: str) -> str:
    """Format a value for display based on its type and column name."""

    if value is None:
        return "NULL"

    # Handle BLOB columns
    if col_type.upper() == "BLOB":
        if isinstance(value, bytes):
            try:
                return f"(str) '{value.decode('utf-8')}'"
            except UnicodeDecodeError:
                pass
            return f"(bytes) 0x{value.hex()} ({len(value)} bytes)"
        return repr(value)

    # Handle timestamps
    if col_name.endswith("_at") and isinstance(value, (int, float)):
        if not value:
            return "never"
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()

    # Handle TEXT columns
    if col_type.upper() == "TEXT":
        return f"'{value}'"

    return str(value)


def _format_table(table_name: str, columns: list, rows: list) -> list:
    column_names = [col[1] for col in columns]
    column_types = {col[1]: col[2] for col in columns}

    output_lines = [f"TABLE: {table_name}", f"Rows: {len(rows)}"]
    for idx, row in enumerate(rows, 1):
        output_lines.append(f"  Row {idx}:")
        for col_name, value in zip(column_names, row):
            formatted_value = format_value(value, col_name, column_types[col_name])
            output_lines.append(f"    {col_name:10} = {formatted_value}")
    return output_lines


def print_sqlite_state(conn: sqlite3.Connection) -> str:
    """
    Print all tables and their rows in a pretty format suitable for inline snapshots.

    Args:
        conn: SQLite database connection

    Returns:
        Formatted string representation of the database state
    """
    cursor = conn.cursor()
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [row[0] for row in cursor.fetchall()]

    output_lines = []
    for table_name in tables:
        cursor.execute(f"PRAGMA table_info({table_name})")
        columns = cursor.fetchall()
        cursor.execute(f"SELECT * FROM {table_name} ORDER BY key")
        output_lines.extend(_format_table(table_name, columns, cursor.fetchall()))

    return "\n".join(output_lines)


async def aprint_sqlite_state(conn: anysqlite.Connection) -> str:
    """The `print_sqlite_state` counterpart for anysqlite connections."""
    cursor = await conn.cursor()
    await cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [row[0] for row in await cursor.fetchall()]

    output_lines = []
    for table_name in tables:
        await cursor.execute(f"PRAGMA table_info({table_name})")
        columns = await cursor.fetchall()
        await cursor.execute(f"SELECT * FROM {table_name} ORDER BY key")
        output_lines.extend(_format_table(table_name, columns, await cursor.fetchall()))

    return "\n".join(output_lines)


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
