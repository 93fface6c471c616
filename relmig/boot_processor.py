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
from typing import Any, cast

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.errors import ConfigurationError
from relmig.fs_ops import log
from relmig.migration_context import MigrationContext


def boot(context: MigrationContext, db: DBAccess) -> bool:
    """
    Boots the migration.
    Raises ConfigurationError if either database is unreachable.
    Returns True if the migration resumes after some failure.
    """
    connection_error_message = _check_connection(db)

    if connection_error_message:
        raise ConfigurationError(connection_error_message)

    table_name = f'state_logs_{context.schema}{context.source_db_name}'
    sql = ('SELECT EXISTS(SELECT 1 FROM information_schema.tables'
           ' WHERE table_schema = %(schema)s AND table_name = %(table_name)s) AS state_logs_table_exist;')

    result = db.query(
        caller=boot.__name__,
        sql=sql,
        vendor=DBVendor.PG,
        raise_on_error=True,
        bindings={'schema': context.schema, 'table_name': table_name}
    )

    state_logs_table_exist = bool(cast(list[dict[str, Any]], result.data)[0]['state_logs_table_exist'])
    recovery_state_message = (f'[{boot.__name__}] relmig is ready to restart after some failure.'
                              f'\n\t--[{boot.__name__}] Consider checking log files at the end of migration')

    normal_state_message = f'[{boot.__name__}] relmig is ready to start'
    log(context, recovery_state_message if state_logs_table_exist else normal_state_message)
    return state_logs_table_exist


def get_introduction_message() -> str:
    """
    Returns the introduction message.
    """
    return ('\n\n\trelmig - resumable MySQL to PostgreSQL migration engine'
            f'\n\t--[{boot.__name__}] Configuration has been just loaded')


def _check_connection(db: DBAccess) -> str:
    """
    Checks correctness of connection details of both MySQL and PostgreSQL.
    """
    sql = 'SELECT 1;'
    mysql_result = db.query(caller=_check_connection.__name__, sql=sql, vendor=DBVendor.MYSQL)
    result_message = f'\tMySQL connection error: {mysql_result.error}' if mysql_result.error else ''
    pg_result = db.query(caller=_check_connection.__name__, sql=sql, vendor=DBVendor.PG)
    result_message += f'\tPostgreSQL connection error: {pg_result.error}' if pg_result.error else ''
    return result_message
