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
from relmig.concurrency_manager import run_concurrently
from relmig.fs_ops import log, get_table_log_path
from relmig.migration_context import MigrationContext
from relmig.table import TableDescriptor
from relmig.utils import get_index_of


def reclaim_storage(context: MigrationContext, db: DBAccess, tables: list[TableDescriptor]) -> int:
    """
    Reclaims storage occupied by dead tuples and refreshes planner statistics of migrated tables.
    Tables, listed in "no_vacuum" by their source names, are skipped.
    Returns the number of vacuumed tables.
    """
    params = [
        [context, db, table]
        for table in tables
        if get_index_of(table.source_name, context.no_vacuum) == -1
    ]

    results = run_concurrently(context, _reclaim_storage_from_table, params, context.max_parallel_ddl_operations)
    return len([is_vacuumed for is_vacuumed in results if is_vacuumed])


def _reclaim_storage_from_table(context: MigrationContext, db: DBAccess, table: TableDescriptor) -> bool:
    """
    Runs "VACUUM (FULL, ANALYZE)" against given table.
    A failure leaves the table bloated, but consistent, so it is logged only.
    """
    full_table_name = f'"{context.schema}"."{table.name}"'
    log_path = get_table_log_path(context, table.name)
    msg = f'[{_reclaim_storage_from_table.__name__}] Running "VACUUM FULL and ANALYZE" for table {full_table_name}...'
    log(context, msg, log_path)
    result = db.query_without_transaction(
        caller=_reclaim_storage_from_table.__name__,
        sql=f'VACUUM (FULL, ANALYZE) {full_table_name};'
    )

    if result.error:
        return False

    log(context, f'[{_reclaim_storage_from_table.__name__}] Table {full_table_name} is VACUUMed...', log_path)
    return True
