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
import os
from typing import cast, Any

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.concurrency_manager import run_concurrently
from relmig.utils import get_index_of
from relmig.fs_ops import write_to_file, log
from relmig.migration_context import MigrationContext


def generate_views(context: MigrationContext, db: DBAccess, view_names: list[str]) -> int:
    """
    Attempts to convert MySQL views to PostgreSQL views.
    Views are best-effort: the code of a view, that cannot be created, is written to the logs.
    Returns the number of created views.
    """
    params = [[context, db, view_name] for view_name in view_names]
    results = run_concurrently(context, _generate_single_view, params, context.max_parallel_ddl_operations)
    return len([is_created for is_created in results if is_created])


def _generate_single_view(context: MigrationContext, db: DBAccess, view_name: str) -> bool:
    """
    Attempts to convert given view from MySQL to PostgreSQL.
    """
    show_create_view_result = db.query(
        caller=_generate_single_view.__name__,
        sql=f'SHOW CREATE VIEW `{view_name}`;',
        vendor=DBVendor.MYSQL
    )

    if show_create_view_result.error:
        return False

    show_create_view_result_data = cast(list[dict[str, Any]], show_create_view_result.data)
    create_pg_view_sql = generate_view_code(
        schema=context.schema,
        view_name=view_name,
        mysql_view_code=show_create_view_result_data[0]['Create View']
    )

    create_pg_view_result = db.query(
        caller=_generate_single_view.__name__,
        sql=create_pg_view_sql,
        vendor=DBVendor.PG
    )

    if create_pg_view_result.error:
        _log_not_created_view(context, view_name, create_pg_view_sql)
        return False

    log(context, f'[{_generate_single_view.__name__}] View "{context.schema}"."{view_name}" is created...')
    return True


def _log_not_created_view(context: MigrationContext, view_name: str, sql: str) -> None:
    """
    Writes a log, containing a code of the view, that has just failed to be created.
    """
    view_file_path = os.path.join(context.not_created_views_path, f'{view_name}.sql')
    write_to_file(view_file_path, sql)


def generate_view_code(schema: str, view_name: str, mysql_view_code: str) -> str:
    """
    Attempts to generate a PostgreSQL equivalent of MySQL view.
    """
    mysql_view_code = '"'.join(mysql_view_code.split('`'))
    query_start_position = get_index_of(' AS ', mysql_view_code)
    mysql_view_code = mysql_view_code[query_start_position + 1:]
    mysql_view_code_list = mysql_view_code.split(' ')
    mysql_view_code_list_length = len(mysql_view_code_list)

    for position, key_word in enumerate(mysql_view_code_list):
        key_word_lower = key_word.lower()
        next_position = position + 1

        if key_word_lower in ('from', 'join') and next_position < mysql_view_code_list_length:
            mysql_view_code_list[next_position] = f'"{schema}".{mysql_view_code_list[next_position]}'

    return f'CREATE OR REPLACE VIEW "{schema}"."{view_name}" {" ".join(mysql_view_code_list)};'
