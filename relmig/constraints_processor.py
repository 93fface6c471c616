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
import re
import time
from typing import NamedTuple, Optional

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.errors import TransientTransferError, is_already_exists, to_migration_error
from relmig.fs_ops import log, generate_error, get_table_log_path
from relmig.migration_context import MigrationContext
from relmig.concurrency_manager import run_concurrently
from relmig.indexes_processor import get_index_statements
from relmig.foreign_key_processor import order_foreign_keys, get_foreign_key_sql
from relmig.sequences_processor import get_set_sequence_value_sql
from relmig.table import ColumnDescriptor, DDLStatement, TableDescriptor
from relmig.type_mapper import TRANSFORM_ZERO_DATE
from relmig.utils import quote_literal, get_pg_identifier

_SQL_RESERVED_VALUES = {
    'CURRENT_DATE': 'CURRENT_DATE',
    '0000-00-00': "'-INFINITY'",
    'CURRENT_TIME': 'CURRENT_TIME',
    '00:00:00': "'00:00:00'",
    'CURRENT_TIMESTAMP': 'CURRENT_TIMESTAMP',
    '0000-00-00 00:00:00': "'-INFINITY'",
    'LOCALTIME': 'LOCALTIME',
    'LOCALTIMESTAMP': 'LOCALTIMESTAMP',
    'NULL': 'NULL',
    'null': 'NULL',
    'UTC_DATE': "(CURRENT_DATE AT TIME ZONE 'UTC')",
    'UTC_TIME': "(CURRENT_TIME AT TIME ZONE 'UTC')",
    'UTC_TIMESTAMP': "(NOW() AT TIME ZONE 'UTC')",
}

# Date and time functions, optionally with a fractional seconds precision, e.g. CURRENT_TIMESTAMP(6).
_TIME_FUNCTION_PATTERN = re.compile(
    r'^(CURRENT_TIMESTAMP|LOCALTIMESTAMP|LOCALTIME|CURRENT_TIME|CURRENT_DATE|NOW)\s*(?:\(\s*(\d*)\s*\))?$',
    re.IGNORECASE
)

_PG_BIT_TYPES = ('bit', 'bit varying')
_PG_BINARY_TYPES = ('bytea',)
_PG_TIME_TYPES = ('timestamp', 'date', 'time')

# Kinds of statements, other foreign keys depend on.
_KEY_KINDS = ('primary', 'unique')


class ConstraintFailure(NamedTuple):
    table_name: str
    constraint_name: str
    error_type: str
    message: str


class ConstraintsSummary(NamedTuple):
    applied: int
    failed: tuple[ConstraintFailure, ...]
    deferred: tuple[str, ...]
    skipped: tuple[str, ...]

    @property
    def is_complete(self) -> bool:
        return len(self.failed) == 0


class _TableResult(NamedTuple):
    table_name: str
    applied: int
    failures: list[ConstraintFailure]
    has_failed_keys: bool


def process_constraints(context: MigrationContext, db: DBAccess, tables: list[TableDescriptor]) -> ConstraintsSummary:
    """
    Applies constraints and indexes once the data is loaded.
    Per-table constraints are applied concurrently, foreign keys follow in dependency order.
    A failure is recorded per constraint and does not stop the rest.
    """
    log(context, f'[{process_constraints.__name__}] Applying constraints...')
    params = [[context, db, table] for table in tables]
    table_results: list[_TableResult] = run_concurrently(
        context,
        _process_constraints_per_table,
        params,
        context.max_parallel_ddl_operations
    )

    applied = sum(table_result.applied for table_result in table_results)
    failures = [failure for table_result in table_results for failure in table_result.failures]
    processed_tables = {table_result.table_name for table_result in table_results}

    for table in tables:
        if table.name not in processed_tables:
            failures.append(ConstraintFailure(table.name, '*', 'MigrationError', 'Constraints are not processed'))

    tables_with_failed_keys = {
        table_result.table_name for table_result in table_results if table_result.has_failed_keys
    } | {table.name for table in tables if table.name not in processed_tables}

    deferred_names, skipped_names = [], []

    if not context.should_migrate_only_data():
        table_names = {table.name for table in tables}
        ordered, deferred = order_foreign_keys(context, tables)
        deferred_names = [f'{table.name}.{foreign_key.name}' for table, foreign_key in deferred]

        for table, foreign_key in ordered + deferred:
            if foreign_key.referenced_table not in table_names:
                msg = (f'[{process_constraints.__name__}] Foreign key "{foreign_key.name}" of "{table.name}"'
                       f' references "{foreign_key.referenced_table}", which is not migrated. Skipped')

                log(context, msg)
                skipped_names.append(f'{table.name}.{foreign_key.name}')
                continue

            if foreign_key.referenced_table in tables_with_failed_keys:
                failures.append(ConstraintFailure(
                    table_name=table.name,
                    constraint_name=foreign_key.name,
                    error_type='MigrationError',
                    message=f'Keys of referenced table "{foreign_key.referenced_table}" are not applied'
                ))

                continue

            sql = get_foreign_key_sql(context, table.name, foreign_key)
            statement = DDLStatement(foreign_key.name, 'foreign_key', sql)
            failure = _apply(context, db, table.name, statement)

            if failure:
                failures.append(failure)
            else:
                applied += 1

    summary = ConstraintsSummary(
        applied=applied,
        failed=tuple(failures),
        deferred=tuple(deferred_names),
        skipped=tuple(skipped_names)
    )

    msg = (f'[{process_constraints.__name__}] Constraints applied: {summary.applied}, failed: {len(summary.failed)},'
           f' deferred: {len(summary.deferred)}, skipped: {len(summary.skipped)}')

    log(context, msg)
    return summary


def _process_constraints_per_table(context: MigrationContext, db: DBAccess, table: TableDescriptor) -> _TableResult:
    """
    Applies all constraints of given table, except foreign keys.
    """
    msg = f'[{_process_constraints_per_table.__name__}] Applying constraints to "{context.schema}"."{table.name}"...'
    log(context, msg, get_table_log_path(context, table.name))
    applied, failures, has_failed_keys = 0, [], False

    for statement in get_table_statements(context, table):
        failure = _apply(context, db, table.name, statement)

        if failure:
            failures.append(failure)
            has_failed_keys = has_failed_keys or statement.kind in _KEY_KINDS
        else:
            applied += 1

    return _TableResult(table.name, applied, failures, has_failed_keys)


def get_table_statements(context: MigrationContext, table: TableDescriptor) -> list[DDLStatement]:
    """
    Returns statements, that apply NOT NULL, defaults, enum/set checks, sequence value, keys, indexes and comments.
    When only the data is migrated, the structure is left as is, only the sequence is moved.
    """
    sequence_sql = get_set_sequence_value_sql(context, table)
    sequence_statements = [DDLStatement(f'{table.name}_sequence', 'sequence', sequence_sql)] if sequence_sql else []

    if context.should_migrate_only_data():
        return sequence_statements

    table_name = f'"{context.schema}"."{table.name}"'
    statements = []

    for column in table.columns:
        if not column.nullable:
            sql = f'ALTER TABLE {table_name} ALTER COLUMN "{column.name}" SET NOT NULL;'
            statements.append(DDLStatement(f'{table.name}_{column.name}_not_null', 'not_null', sql))

    for column in table.columns:
        default_value = get_default_value(column)

        if default_value is not None:
            sql = f'ALTER TABLE {table_name} ALTER COLUMN "{column.name}" SET DEFAULT {default_value};'
            statements.append(DDLStatement(f'{table.name}_{column.name}_default', 'default', sql))
        elif column.default is not None and column.is_default_generated:
            msg = (f'[{get_table_statements.__name__}] Default expression {column.default} of'
                   f' "{table.name}"."{column.name}" has no PostgreSQL counterpart, skipped')

            log(context, msg, get_table_log_path(context, table.name))

    for column in table.columns:
        check = get_check_expression(column)

        if check:
            constraint_name = get_pg_identifier(f'{table.name}_{column.name}_check', table.name, column.name)
            sql = f'ALTER TABLE {table_name} ADD CONSTRAINT "{constraint_name}" CHECK ({check});'
            statements.append(DDLStatement(constraint_name, 'check', sql))

    statements.extend(sequence_statements)
    statements.extend(get_index_statements(context, table))

    if table.comment:
        sql = f'COMMENT ON TABLE {table_name} IS {quote_literal(table.comment)};'
        statements.append(DDLStatement(f'{table.name}_comment', 'comment', sql))

    for column in table.columns:
        if column.comment:
            sql = f'COMMENT ON COLUMN {table_name}."{column.name}" IS {quote_literal(column.comment)};'
            statements.append(DDLStatement(f'{table.name}_{column.name}_comment', 'comment', sql))

    return statements


def get_default_value(column: ColumnDescriptor) -> Optional[str]:
    """
    Returns the default value expression of given column, or None if there is nothing to set.
    Auto-incremented columns already default to their sequences.
    """
    if column.default is None or column.is_auto_increment:
        return None

    if column.default in _SQL_RESERVED_VALUES:
        return _SQL_RESERVED_VALUES[column.default]

    time_function = _TIME_FUNCTION_PATTERN.match(column.default.strip())
    is_expression = column.is_default_generated or _is_of_type(column.target_type, _PG_TIME_TYPES)

    if time_function and is_expression:
        return _get_time_function_sql(time_function.group(1), time_function.group(2))

    if column.is_default_generated:
        # An arbitrary expression, e.g. (uuid()), has no reliable PostgreSQL counterpart.
        return None

    if column.transform == TRANSFORM_ZERO_DATE and column.default.startswith('0000-00-00'):
        return "'-INFINITY'"

    if _is_of_type(column.target_type, _PG_BIT_TYPES):
        return column.default  # bit varying, e.g. b'101'

    if _is_of_type(column.target_type, _PG_BINARY_TYPES):
        return f"'\\x{column.default.encode().hex()}'"  # bytea

    return quote_literal(column.default)


def _get_time_function_sql(function_name: str, precision: Optional[str]) -> str:
    """
    Returns PostgreSQL counterpart of MySQL date and time function, keeping its precision.
    """
    function_name = function_name.upper()

    if function_name == 'NOW':
        function_name = 'CURRENT_TIMESTAMP'

    if function_name == 'CURRENT_DATE' or not precision:
        return function_name

    return f'{function_name}({precision})'


def get_check_expression(column: ColumnDescriptor) -> Optional[str]:
    """
    Returns a check expression, that keeps enum and set columns within their literals.
    """
    if not column.source_type.values:
        return None

    literals = ','.join([quote_literal(value) for value in column.source_type.values])

    if column.source_type.name == 'enum':
        return f'"{column.name}" IN ({literals})'

    if column.source_type.name == 'set':
        return f'string_to_array("{column.name}", \',\') <@ ARRAY[{literals}]::TEXT[]'

    return None


def _is_of_type(pg_data_type: str, pg_types: tuple[str, ...]) -> bool:
    """
    Defines if given pg_data_type is related to one of types from pg_types tuple.
    """
    return any(pg_data_type.startswith(pg_type) for pg_type in pg_types)


def _apply(
    context: MigrationContext,
    db: DBAccess,
    table_name: str,
    statement: DDLStatement
) -> Optional[ConstraintFailure]:
    """
    Applies a single statement, retrying on transient errors.
    An object, that already exists, counts as applied, so re-applying after an interruption is safe.
    Returns the failure, or None on success.
    """
    log_path = get_table_log_path(context, table_name)
    attempt = 1

    while True:
        result = db.query(
            caller=_apply.__name__,
            sql=statement.sql,
            vendor=DBVendor.PG
        )

        if not result.error:
            log(context, f'[{_apply.__name__}] "{statement.name}" is applied to "{table_name}"', log_path)
            return None

        if is_already_exists(result.error):
            if table_name in _get_owner_table_names(context, db, statement.name):
                log(context, f'[{_apply.__name__}] "{statement.name}" already exists on "{table_name}"', log_path)
                return None

            msg = f'Name "{statement.name}" is already taken by another object'
            generate_error(context, f'[{_apply.__name__}] {msg}', statement.sql)
            return ConstraintFailure(table_name, statement.name, 'MigrationError', msg)

        error = to_migration_error(result.error, table_name=table_name, constraint_name=statement.name)

        if isinstance(error, TransientTransferError) and attempt < context.max_chunk_attempts:
            attempt += 1
            time.sleep(context.retry_delay)
            continue

        generate_error(context, f'[{_apply.__name__}] {type(error).__name__}: {error}', statement.sql)
        return ConstraintFailure(table_name, statement.name, type(error).__name__, str(error))


def _get_owner_table_names(context: MigrationContext, db: DBAccess, object_name: str) -> set[str]:
    """
    Returns names of tables, that own an index or a constraint, named object_name, in the target schema.
    """
    sql = ('SELECT c.relname AS table_name FROM pg_catalog.pg_index x'
           ' JOIN pg_catalog.pg_class i ON i.oid = x.indexrelid'
           ' JOIN pg_catalog.pg_class c ON c.oid = x.indrelid'
           ' JOIN pg_catalog.pg_namespace n ON n.oid = i.relnamespace'
           ' WHERE n.nspname = %(schema)s AND i.relname = %(name)s'
           ' UNION SELECT c.relname AS table_name FROM pg_catalog.pg_constraint con'
           ' JOIN pg_catalog.pg_class c ON c.oid = con.conrelid'
           ' JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace'
           ' WHERE n.nspname = %(schema)s AND con.conname = %(name)s;')

    result = db.query(
        caller=_get_owner_table_names.__name__,
        sql=sql,
        vendor=DBVendor.PG,
        bindings={'schema': context.schema, 'name': object_name}
    )

    return {row['table_name'] for row in result.data or []}
