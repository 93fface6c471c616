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
from collections import deque
from typing import cast, Any

import relmig.extra_config_processor as ExtraConfigProcessor
from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.fs_ops import log
from relmig.migration_context import MigrationContext
from relmig.table import ForeignKeyDescriptor, TableDescriptor


def load_foreign_keys(
    context: MigrationContext,
    db: DBAccess,
    original_table_name: str
) -> tuple[ForeignKeyDescriptor, ...]:
    """
    Retrieves foreign keys metadata of given source table.
    Foreign keys, declared in the extra config, are added as well.
    """
    sql = """
        SELECT
            kcu.CONSTRAINT_NAME, kcu.COLUMN_NAME, kcu.REFERENCED_TABLE_NAME, kcu.REFERENCED_COLUMN_NAME,
            rc.UPDATE_RULE, rc.DELETE_RULE
        FROM information_schema.KEY_COLUMN_USAGE AS kcu
        INNER JOIN information_schema.REFERENTIAL_CONSTRAINTS AS rc
            ON rc.CONSTRAINT_SCHEMA = kcu.CONSTRAINT_SCHEMA
                AND rc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
                AND rc.TABLE_NAME = kcu.TABLE_NAME
        WHERE kcu.TABLE_SCHEMA = %s AND kcu.TABLE_NAME = %s AND kcu.REFERENCED_TABLE_NAME IS NOT NULL
        ORDER BY kcu.CONSTRAINT_NAME, kcu.ORDINAL_POSITION;
    """

    result = db.query(
        caller=load_foreign_keys.__name__,
        sql=sql,
        vendor=DBVendor.MYSQL,
        raise_on_error=True,
        bindings=(context.source_db_name, original_table_name)
    )

    extra_rows = ExtraConfigProcessor.parse_foreign_keys(context, original_table_name)
    rows = cast(list[dict[str, Any]], result.data or []) + extra_rows
    return get_foreign_key_descriptors(context, original_table_name, rows)


def get_foreign_key_descriptors(
    context: MigrationContext,
    original_table_name: str,
    rows: list[dict[str, Any]]
) -> tuple[ForeignKeyDescriptor, ...]:
    """
    Groups foreign keys metadata rows by constraint.
    Table and column names are translated to their target counterparts.
    """
    constraints: dict[str, dict[str, Any]] = {}

    for row in rows:
        current_column_name = ExtraConfigProcessor.get_column_name(
            context=context,
            original_table_name=original_table_name,
            current_column_name=row['COLUMN_NAME'],
            should_get_original=False
        )

        current_referenced_column_name = ExtraConfigProcessor.get_column_name(
            context=context,
            original_table_name=row['REFERENCED_TABLE_NAME'],
            current_column_name=row['REFERENCED_COLUMN_NAME'],
            should_get_original=False
        )

        if row['CONSTRAINT_NAME'] in constraints:
            constraints[row['CONSTRAINT_NAME']]['columns'].append(current_column_name)
            constraints[row['CONSTRAINT_NAME']]['referenced_columns'].append(current_referenced_column_name)
            continue

        constraints[row['CONSTRAINT_NAME']] = {
            'columns': [current_column_name],
            'referenced_columns': [current_referenced_column_name],
            'referenced_table': ExtraConfigProcessor.get_table_name(
                context=context,
                current_table_name=row['REFERENCED_TABLE_NAME'],
                should_get_original=False
            ),
            'on_update': row.get('UPDATE_RULE') or 'NO ACTION',
            'on_delete': row.get('DELETE_RULE') or 'NO ACTION',
        }

    return tuple(
        ForeignKeyDescriptor(
            name=constraint_name,
            columns=tuple(constraint['columns']),
            referenced_table=constraint['referenced_table'],
            referenced_columns=tuple(constraint['referenced_columns']),
            on_update=constraint['on_update'],
            on_delete=constraint['on_delete']
        )
        for constraint_name, constraint in constraints.items()
    )


def get_foreign_key_sql(context: MigrationContext, table_name: str, foreign_key: ForeignKeyDescriptor) -> str:
    """
    Returns a statement, creating given foreign key.
    """
    foreign_key_column_names = ','.join([f'"{column_name}"' for column_name in foreign_key.columns])
    referenced_column_names = ','.join([f'"{column_name}"' for column_name in foreign_key.referenced_columns])
    return (f'ALTER TABLE "{context.schema}"."{table_name}" ADD CONSTRAINT "{foreign_key.name}"'
            f' FOREIGN KEY ({foreign_key_column_names})'
            f' REFERENCES "{context.schema}"."{foreign_key.referenced_table}"({referenced_column_names})'
            f' ON UPDATE {foreign_key.on_update} ON DELETE {foreign_key.on_delete};')


def order_foreign_keys(
    context: MigrationContext,
    tables: list[TableDescriptor]
) -> tuple[list[tuple[TableDescriptor, ForeignKeyDescriptor]], list[tuple[TableDescriptor, ForeignKeyDescriptor]]]:
    """
    Orders foreign keys by table dependencies (Kahn's algorithm).
    Tables without outgoing foreign keys go first, self references do not count as dependencies.
    Foreign keys of tables, taking part in a reference cycle, are returned separately as deferred.
    References to tables, that are not migrated, do not count as dependencies either.
    """
    table_names = {table.name for table in tables}
    dependencies: dict[str, set[str]] = {
        table.name: {
            foreign_key.referenced_table
            for foreign_key in table.foreign_keys
            if foreign_key.referenced_table != table.name and foreign_key.referenced_table in table_names
        }
        for table in tables
    }

    dependants: dict[str, list[str]] = {table.name: [] for table in tables}

    for table_name, referenced_tables in dependencies.items():
        for referenced_table in referenced_tables:
            dependants[referenced_table].append(table_name)

    in_degree = {table_name: len(referenced_tables) for table_name, referenced_tables in dependencies.items()}
    queue = deque([table.name for table in tables if in_degree[table.name] == 0])
    ordered_table_names = []

    while queue:
        table_name = queue.popleft()
        ordered_table_names.append(table_name)

        for dependant in dependants[table_name]:
            in_degree[dependant] -= 1

            if in_degree[dependant] == 0:
                queue.append(dependant)

    tables_by_name = {table.name: table for table in tables}
    ordered = [
        (tables_by_name[table_name], foreign_key)
        for table_name in ordered_table_names
        for foreign_key in tables_by_name[table_name].foreign_keys
    ]

    ordered_set = set(ordered_table_names)
    deferred = [
        (table, foreign_key)
        for table in tables
        if table.name not in ordered_set
        for foreign_key in table.foreign_keys
    ]

    if deferred:
        cyclic_tables = ', '.join(sorted({table.name for table, _ in deferred}))
        msg = (f'[{order_foreign_keys.__name__}] Reference cycle detected among tables: {cyclic_tables}.'
               f' Their foreign keys are deferred to the second pass')

        log(context, msg)

    return ordered, deferred
