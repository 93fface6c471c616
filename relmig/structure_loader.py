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
from typing import cast, Any

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.errors import FatalStructuralError, MigrationError
from relmig.utils import get_index_of
from relmig.fs_ops import log
from relmig.migration_context import MigrationContext
from relmig.concurrency_manager import run_concurrently
from relmig.schema_processor import create_schema
from relmig.table_processor import get_table_descriptor, create_table
from relmig.sequences_processor import create_sequence
from relmig.view_generator import generate_views
from relmig.table import TableDescriptor


def load_structure(context: MigrationContext, db: DBAccess, structure_loaded: bool) -> list[TableDescriptor]:
    """
    Loads source tables and views, that need to be migrated.
    Creates target tables, sequences and views, unless the structure is already loaded.
    Raises FatalStructuralError if any table cannot be described or created.
    """
    table_names, view_names = get_relation_names(context, db)
    statistics = _get_tables_statistics(context, db)
    should_create_structure = not structure_loaded and not context.should_migrate_only_data()

    if should_create_structure:
        _run_structural(create_schema, context, db)

    params = [
        [context, db, table_name, statistics.get(table_name, {}), should_create_structure]
        for table_name in table_names
    ]

    try:
        tables = run_concurrently(
            context,
            _process_table_before_data_loading,
            params,
            context.max_parallel_ddl_operations,
            fail_fast=True
        )
    except FatalStructuralError:
        raise
    except MigrationError as e:
        raise _to_fatal_structural_error(e) from e

    # Keep the source order, regardless of tasks completion order.
    tables = sorted(tables, key=lambda table: get_index_of(table.source_name, table_names))

    if should_create_structure and view_names:
        views_cnt = generate_views(context, db, view_names)
        log(context, f'[{load_structure.__name__}] Views created: {views_cnt} of {len(view_names)}')

    msg = (f'[{load_structure.__name__}] Source DB structure is loaded...\n'
           f'\t--[{load_structure.__name__}] Tables to migrate: {len(tables)}\n'
           f'\t--[{load_structure.__name__}] Views to migrate: {len(view_names)}')

    log(context, msg)
    return tables


def get_relation_names(context: MigrationContext, db: DBAccess) -> tuple[list[str], list[str]]:
    """
    Returns names of source tables and views, honouring the include and exclude lists.
    """
    sql = f'SHOW FULL TABLES IN `{context.source_db_name}` WHERE 1 = 1'

    if context.include_tables:
        include_tables = ','.join([f'"{table_name}"' for table_name in context.include_tables])
        sql += f' AND `Tables_in_{context.source_db_name}` IN({include_tables})'

    if context.exclude_tables:
        exclude_tables = ','.join([f'"{table_name}"' for table_name in context.exclude_tables])
        sql += f' AND `Tables_in_{context.source_db_name}` NOT IN({exclude_tables})'

    result = _run_structural(
        db.query,
        caller=get_relation_names.__name__,
        sql=f'{sql};',
        vendor=DBVendor.MYSQL,
        raise_on_error=True
    )

    table_names, view_names = [], []

    for row in cast(list[dict[str, Any]], result.data):
        relation_name = row[f'Tables_in_{context.source_db_name}']

        if get_index_of(relation_name, context.exclude_tables) != -1:
            continue

        if row['Table_type'] == 'BASE TABLE':
            table_names.append(relation_name)
        elif row['Table_type'] == 'VIEW':
            view_names.append(relation_name)

    return table_names, view_names


def _get_tables_statistics(context: MigrationContext, db: DBAccess) -> dict[str, dict[str, Any]]:
    """
    Returns row count estimates, average row lengths and comments of all source tables.
    """
    result = _run_structural(
        db.query,
        caller=_get_tables_statistics.__name__,
        sql=('SELECT TABLE_NAME, TABLE_ROWS, AVG_ROW_LENGTH, TABLE_COMMENT'
             ' FROM information_schema.TABLES WHERE TABLE_SCHEMA = %s;'),
        vendor=DBVendor.MYSQL,
        raise_on_error=True,
        bindings=(context.source_db_name,)
    )

    return {row['TABLE_NAME']: row for row in cast(list[dict[str, Any]], result.data)}


def _process_table_before_data_loading(
    context: MigrationContext,
    db: DBAccess,
    original_table_name: str,
    statistics: dict[str, Any],
    should_create_structure: bool
) -> TableDescriptor:
    """
    Describes given table and creates it, along with its sequence, if necessary.
    """
    table = get_table_descriptor(context, db, original_table_name, statistics)

    if should_create_structure:
        try:
            create_table(context, db, table)
            create_sequence(context, db, table)
        except FatalStructuralError:
            raise
        except MigrationError as e:
            raise _to_fatal_structural_error(e, table.name) from e

    return table


def _run_structural(func: Any, *args: Any, **kwargs: Any) -> Any:
    """
    Runs given function, converting any migration error into a fatal structural error.
    """
    try:
        return func(*args, **kwargs)
    except FatalStructuralError:
        raise
    except MigrationError as e:
        raise _to_fatal_structural_error(e) from e


def _to_fatal_structural_error(error: MigrationError, table_name: str = '') -> FatalStructuralError:
    """
    Structural failures abort the run before any data is moved.
    """
    return FatalStructuralError(error.message, table_name=error.table_name or table_name or None)

