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
from relmig.fs_ops import log
from relmig.migration_context import MigrationContext
from relmig.table import DDLStatement, IndexDescriptor, TableDescriptor
from relmig.utils import get_pg_identifier


def load_indexes(context: MigrationContext, db: DBAccess, original_table_name: str) -> tuple[IndexDescriptor, ...]:
    """
    Reads indexes, including PK, of given source table.
    """
    show_index_result = db.query(
        caller=load_indexes.__name__,
        sql=f'SHOW INDEX FROM `{original_table_name}`;',
        vendor=DBVendor.MYSQL,
        raise_on_error=True
    )

    pg_indexes: dict[str, dict[str, Any]] = {}
    show_index_result_data = cast(list[dict[str, Any]], show_index_result.data)

    for index in sorted(show_index_result_data, key=lambda row: (row['Key_name'], row['Seq_in_index'])):
        pg_column_name = ExtraConfigProcessor.get_column_name(
            context=context,
            original_table_name=original_table_name,
            current_column_name=index['Column_name'],
            should_get_original=False
        )

        if index['Key_name'] in pg_indexes:
            pg_indexes[index['Key_name']]['columns'].append(pg_column_name)
            continue

        if index['Key_name'].lower() == 'primary':
            kind = 'primary'
        elif int(index['Non_unique']) == 0:
            kind = 'unique'
        else:
            kind = 'index'

        pg_indexes[index['Key_name']] = {
            'kind': kind,
            'columns': [pg_column_name],
            'index_type': index['Index_type'],
        }

    return tuple(
        IndexDescriptor(
            name=index_name,
            kind=index['kind'],
            columns=tuple(index['columns']),
            index_type=index['index_type']
        )
        for index_name, index in pg_indexes.items()
    )


def get_index_statements(context: MigrationContext, table: TableDescriptor) -> list[DDLStatement]:
    """
    Returns statements, creating PK, unique constraints and indexes of given table.
    PK goes first, then unique constraints, then plain indexes.
    """
    statements = []
    order = {'primary': 0, 'unique': 1, 'index': 2}

    for position, index in enumerate(sorted(table.indexes, key=lambda idx: order[idx.kind])):
        column_names = ','.join([f'"{column_name}"' for column_name in index.columns])

        if index.kind == 'primary':
            constraint_name = get_pg_identifier(f'{table.name}_pkey', table.name)
            sql = (f'ALTER TABLE "{context.schema}"."{table.name}"'
                   f' ADD CONSTRAINT "{constraint_name}" PRIMARY KEY({column_names});')

            statements.append(DDLStatement(constraint_name, index.kind, sql))
            continue

        index_method = get_index_type(context, index.index_type)

        if not index_method:
            msg = (f'[{get_index_statements.__name__}] Index "{index.name}" of type {index.index_type}'
                   f' on "{context.schema}"."{table.name}" has no PostgreSQL counterpart, skipped')

            log(context, msg)
            continue

        if index_method == 'GIN':
            # Full-text index.
            document = " || ' ' || ".join([f'COALESCE("{column_name}", \'\')' for column_name in index.columns])
            column_names = f"to_tsvector('simple', {document})"

        index_name = get_pg_identifier(
            f'{table.name}_{index.columns[0]}{position}_idx',
            table.name,
            index.name,
            *index.columns
        )

        sql = (f'CREATE {"UNIQUE " if index.kind == "unique" else ""}INDEX "{index_name}"'
               f' ON "{context.schema}"."{table.name}" USING {index_method} ({column_names});')

        statements.append(DDLStatement(index_name, index.kind, sql))

    return statements


def get_index_type(context: MigrationContext, index_type: str) -> str:
    """
    Returns PostgreSQL index type, that correlates to given MySQL index type.
    An empty string means the index cannot be migrated.
    """
    return context.index_types_map[index_type] if index_type in context.index_types_map else 'BTREE'
