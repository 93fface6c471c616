__author__ = "Anatoly Khaytovich <anatolyuss@gmail.com>"
__copyright__ = "Copyright (C) 2015 - present, Anatoly Khaytovich <anatolyuss@gmail.com>"
__license__ = """
    This file is a part of "FromMySqlToPostgreSql" - the database migration tool.
    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License.

    This program is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
    GNU General Public License for more details.

    You should have received a copy of the GNU General Public License
    along with this program (please see the "LICENSE.md" file).
    If not, see <http://www.gnu.org/licenses/gpl.txt>.
"""
from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.errors import to_migration_error
from relmig.fs_ops import log, generate_error
from relmig.migration_context import MigrationContext
from relmig.migration_state_manager import BINARY_DATA_DECODED
from relmig.type_mapper import BINARY_TRANSFORMS
from relmig.table import TableDescriptor


def get_binary_columns(tables: list[TableDescriptor]) -> list[tuple[str, str]]:
    """
    Returns (table, column) pairs of columns, loaded as hex text.
    """
    return [
        (table.name, column.name)
        for table in tables
        for column in table.columns
        if column.transform in BINARY_TRANSFORMS
    ]


def decode(context: MigrationContext, db: DBAccess, tables: list[TableDescriptor]) -> int:
    """
    Decodes binary data from textual representation.
    All columns are decoded, and the phase is marked as completed, in a single transaction.
    Decoding twice corrupts the data, hence either everything is decoded and recorded, or nothing.
    Returns the number of decoded columns.
    """
    log(context, f'[{decode.__name__}] Decoding binary data from textual representation')
    binary_columns = get_binary_columns(tables)
    statements = [
        (f'UPDATE "{context.schema}"."{table_name}"'
         f' SET "{column_name}" = DECODE(ENCODE("{column_name}", \'escape\'), \'hex\');')
        for table_name, column_name in binary_columns
    ]

    statements.append(f'UPDATE {context.state_logs_table_name} SET "{BINARY_DATA_DECODED}" = TRUE;')
    pg_client, pg_cursor, sql = None, None, ''

    try:
        pg_client = db.get_db_client(DBVendor.PG)
        pg_cursor = pg_client.cursor()

        for sql in statements:
            pg_cursor.execute(sql)

        pg_client.commit()
    except Exception as e:
        generate_error(context, f'[{decode.__name__}] {repr(e)}', sql)

        if pg_client:
            try:
                pg_client.rollback()
            except Exception as rollback_error:
                generate_error(context, f'[{decode.__name__}] Rollback failed: {repr(rollback_error)}')

        raise to_migration_error(e) from e
    finally:
        if pg_cursor:
            pg_cursor.close()

        db.release_db_client(pg_client)

    for table_name, column_name in binary_columns:
        msg = (f'[{decode.__name__}] Decoded binary data from textual representation'
               f' for "{context.schema}"."{table_name}"."{column_name}"')

        log(context, msg)

    return len(binary_columns)
