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

import relmig.extra_config_processor as ExtraConfigProcessor
from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.fs_ops import log, get_table_log_path
from relmig.migration_context import MigrationContext
from relmig.type_mapper import map_column
from relmig.indexes_processor import load_indexes
from relmig.foreign_key_processor import load_foreign_keys
from relmig.table import ColumnDescriptor, TableDescriptor


def get_table_descriptor(
    context: MigrationContext,
    db: DBAccess,
    original_table_name: str,
    statistics: dict[str, Any]
) -> TableDescriptor:
    """
    Reads the structure of a single source table.
    Raises TypeMappingError if one of its columns has an unsupported type.
    """
    table_name = ExtraConfigProcessor.get_table_name(context, original_table_name, should_get_original=False)
    show_columns_result = db.query(
        caller=get_table_descriptor.__name__,
        sql=f'SHOW FULL COLUMNS FROM `{original_table_name}`;',
        vendor=DBVendor.MYSQL,
        raise_on_error=True
    )

    columns = tuple(
        get_column_descriptor(context, original_table_name, table_name, column)
        for column in cast(list[dict[str, Any]], show_columns_result.data)
    )

    return TableDescriptor(
        source_name=original_table_name,
        name=table_name,
        columns=columns,
        indexes=load_indexes(context, db, original_table_name),
        foreign_keys=load_foreign_keys(context, db, original_table_name),
        rows_estimate=int(statistics.get('TABLE_ROWS') or 0),
        avg_row_length=int(statistics.get('AVG_ROW_LENGTH') or 0),
        comment=statistics.get('TABLE_COMMENT') or ''
    )


def get_column_descriptor(
    context: MigrationContext,
    original_table_name: str,
    table_name: str,
    column: dict[str, Any]
) -> ColumnDescriptor:
    """
    Converts a row of "SHOW FULL COLUMNS" into a column descriptor.
    """
    column_name = ExtraConfigProcessor.get_column_name(
        context=context,
        original_table_name=original_table_name,
        current_column_name=column['Field'],
        should_get_original=False
    )

    source_type, type_mapping = map_column(column_name, column['Type'], context.data_types_map, table_name)
    return ColumnDescriptor(
        name=column_name,
        source_name=column['Field'],
        source_type=source_type,
        nullable=column['Null'].lower() != 'no',
        default=column['Default'],
        is_auto_increment='auto_increment' in (column.get('Extra') or '').lower(),
        comment=column.get('Comment') or '',
        target_type=type_mapping.target_type,
        transform=type_mapping.transform,
        is_default_generated='default_generated' in (column.get('Extra') or '').lower()
    )


def create_table(context: MigrationContext, db: DBAccess, table: TableDescriptor) -> None:
    """
    Creates given table in the target database.
    Only columns are created, indexes and constraints are applied once the data is loaded.
    """
    log_path = get_table_log_path(context, table.name)
    log(context, f'[{create_table.__name__}] Currently creating table: `{table.name}`', log_path)
    sql_columns = ','.join([f'"{column.name}" {column.target_type}' for column in table.columns])
    db.query(
        caller=create_table.__name__,
        sql=f'CREATE TABLE IF NOT EXISTS "{context.schema}"."{table.name}"({sql_columns});',
        vendor=DBVendor.PG,
        raise_on_error=True
    )

    log(context, f'[{create_table.__name__}] Table "{context.schema}"."{table.name}" is created...', log_path)
