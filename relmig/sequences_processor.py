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
from typing import Optional

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.fs_ops import log, get_table_log_path
from relmig.migration_context import MigrationContext
from relmig.table import ColumnDescriptor, TableDescriptor


def get_auto_increment_column(table: TableDescriptor) -> Optional[ColumnDescriptor]:
    """
    Defines which column in given table has the "auto_increment" attribute.
    MySQL allows at most one such column per table.
    """
    return next((column for column in table.columns if column.is_auto_increment), None)


def get_sequence_name(table: TableDescriptor, column: ColumnDescriptor) -> str:
    """
    Returns a name of the sequence, that backs given column.
    """
    return f'{table.name}_{column.name}_seq'


def create_sequence(context: MigrationContext, db: DBAccess, table: TableDescriptor) -> None:
    """
    Creates a sequence for the auto-incremented column of given table, if any.
    The sequence is bound to the column default and owned by the column.
    """
    column = get_auto_increment_column(table)

    if not column:
        return

    seq_name = get_sequence_name(table, column)
    statements = (
        f'CREATE SEQUENCE IF NOT EXISTS "{context.schema}"."{seq_name}";',
        f'ALTER TABLE "{context.schema}"."{table.name}" ALTER COLUMN "{column.name}"'
        f' SET DEFAULT NEXTVAL(\'"{context.schema}"."{seq_name}"\');',
        f'ALTER SEQUENCE "{context.schema}"."{seq_name}" OWNED BY "{context.schema}"."{table.name}"."{column.name}";',
    )

    client = db.get_db_client(DBVendor.PG)

    try:
        for sql in statements:
            db.query(
                caller=create_sequence.__name__,
                sql=sql,
                vendor=DBVendor.PG,
                raise_on_error=True,
                should_return_client=True,
                client=client
            )
    finally:
        db.release_db_client(client)

    msg = f'[{create_sequence.__name__}] Sequence "{context.schema}"."{seq_name}" is created...'
    log(context, msg, get_table_log_path(context, table.name))


def get_set_sequence_value_sql(context: MigrationContext, table: TableDescriptor) -> Optional[str]:
    """
    Returns a statement, that moves the sequence past the loaded data.
    """
    column = get_auto_increment_column(table)

    if not column:
        return None

    seq_name = get_sequence_name(table, column)
    return (f'SELECT SETVAL(\'"{context.schema}"."{seq_name}"\','
            f' (SELECT MAX("{column.name}") FROM "{context.schema}"."{table.name}"));')
