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
import json
import math
from typing import NamedTuple, Optional, cast, Any

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.fs_ops import log, get_table_log_path
from relmig.migration_context import MigrationContext
from relmig.table import TableDescriptor

CHUNK_STATUS_PENDING = 'pending'
CHUNK_STATUS_IN_PROGRESS = 'in-progress'
CHUNK_STATUS_DONE = 'done'
CHUNK_STATUS_FAILED = 'failed'

CHUNK_STATUSES = (CHUNK_STATUS_PENDING, CHUNK_STATUS_IN_PROGRESS, CHUNK_STATUS_DONE, CHUNK_STATUS_FAILED)

CRITERION_FULL = 'full'
CRITERION_PK_RANGE = 'pk_range'
CRITERION_OFFSET = 'offset'

INTEGER_TYPES = ('tinyint', 'smallint', 'mediumint', 'int', 'integer', 'bigint')

# The largest LIMIT MySQL accepts, it stands for "all the remaining rows".
_MYSQL_MAX_LIMIT = 18446744073709551615


class ChunkRecord(NamedTuple):
    id: int
    table_name: str
    chunk_number: int
    criterion: dict
    status: str
    attempts: int


def plan_chunks(
    rows_estimate: int,
    avg_row_length: int,
    chunk_size_bytes: int,
    threshold: int,
    pk_column: Optional[str] = None,
    pk_bounds: Optional[tuple[int, int]] = None,
    order_by: Optional[list[str]] = None,
    is_hashed_order: bool = False
) -> list[dict[str, Any]]:
    """
    Splits a table into selection criteria, that cover its row set exactly once.
    Small tables make a single "full" chunk.
    Tables with a single-column integer PK are split into equal key ranges, half-open, with open outer ends.
    Other tables are split into LIMIT/OFFSET windows over a deterministic order, the last window is unbounded.
    The order is either a unique key, or, when is_hashed_order is set, a hash of whole rows.
    """
    if rows_estimate < threshold:
        return [{'type': CRITERION_FULL}]

    rows_per_chunk = max(1, chunk_size_bytes // max(avg_row_length, 1))
    number_of_chunks = math.ceil(rows_estimate / rows_per_chunk)

    if number_of_chunks <= 1:
        return [{'type': CRITERION_FULL}]

    if pk_column:
        if not pk_bounds or pk_bounds[0] is None or pk_bounds[1] is None:
            # Nothing to split, the source table is actually empty.
            return [{'type': CRITERION_FULL}]

        min_value, max_value = int(pk_bounds[0]), int(pk_bounds[1])
        span = max_value - min_value + 1
        stride = math.ceil(span / min(number_of_chunks, span))
        number_of_chunks = math.ceil(span / stride)

        if number_of_chunks <= 1:
            return [{'type': CRITERION_FULL}]

        return [
            {
                'type': CRITERION_PK_RANGE,
                'column': pk_column,
                'lower': None if chunk_index == 0 else min_value + chunk_index * stride,
                'upper': None if chunk_index == number_of_chunks - 1 else min_value + (chunk_index + 1) * stride,
            }
            for chunk_index in range(number_of_chunks)
        ]

    if not order_by:
        return [{'type': CRITERION_FULL}]

    return [
        {
            'type': CRITERION_OFFSET,
            'order_by': list(order_by),
            'hashed': is_hashed_order,
            'offset': chunk_index * rows_per_chunk,
            'limit': None if chunk_index == number_of_chunks - 1 else rows_per_chunk,
        }
        for chunk_index in range(number_of_chunks)
    ]


def criterion_to_sql(criterion: dict[str, Any]) -> str:
    """
    Converts a selection criterion into a MySQL SELECT statement suffix.
    """
    if criterion['type'] == CRITERION_PK_RANGE:
        conditions = []

        if criterion['lower'] is not None:
            conditions.append(f'`{criterion["column"]}` >= {int(criterion["lower"])}')

        if criterion['upper'] is not None:
            conditions.append(f'`{criterion["column"]}` < {int(criterion["upper"])}')

        return f' WHERE {" AND ".join(conditions)}' if conditions else ''

    if criterion['type'] == CRITERION_OFFSET:
        if criterion.get('hashed'):
            # Collations and max_sort_length may tie distinct rows, their quoted values never do.
            quoted_values = ','.join([f'QUOTE(`{column_name}`)' for column_name in criterion['order_by']])
            order_by = f"MD5(CONCAT_WS(',', {quoted_values}))"
        else:
            order_by = ','.join([f'`{column_name}`' for column_name in criterion['order_by']])

        limit = _MYSQL_MAX_LIMIT if criterion['limit'] is None else int(criterion['limit'])
        return f' ORDER BY {order_by} LIMIT {limit} OFFSET {int(criterion["offset"])}'

    return ''


def _to_chunk_record(row: dict[str, Any]) -> ChunkRecord:
    """
    Converts a data pool row into a chunk record.
    """
    metadata = row['metadata']
    return ChunkRecord(
        id=int(row['id']),
        table_name=row['table_name'],
        chunk_number=int(row['chunk_number']),
        criterion=json.loads(metadata) if isinstance(metadata, str) else metadata,
        status=row['status'],
        attempts=int(row['attempts'])
    )


class DataPool:
    """
    Durable queue of chunks, kept in "{schema}"."data_pool_{schema}{source_db}" table of the target database.
    Every status change is a single conditional statement, so concurrent workers never claim the same chunk.
    """
    def __init__(self, context: MigrationContext, db: DBAccess):
        self._context = context
        self._db = db
        self.table_name = context.data_pool_table_name

    def create_data_pool_table(self) -> None:
        """
        Creates data pool temporary table.
        """
        sql = f'''
            CREATE TABLE IF NOT EXISTS {self.table_name}(
                "id" BIGSERIAL PRIMARY KEY,
                "table_name" TEXT NOT NULL,
                "chunk_number" INTEGER NOT NULL,
                "metadata" JSON NOT NULL,
                "status" TEXT NOT NULL DEFAULT '{CHUNK_STATUS_PENDING}',
                "attempts" INTEGER NOT NULL DEFAULT 0,
                "last_error" TEXT,
                "rows_loaded" BIGINT,
                UNIQUE ("table_name", "chunk_number")
            );
        '''

        self._db.query(
            caller=self.create_data_pool_table.__name__,
            sql=sql,
            vendor=DBVendor.PG,
            raise_on_error=True
        )

        log(self._context, f'[{self.create_data_pool_table.__name__}] table {self.table_name} is created...')

    def drop_data_pool_table(self) -> None:
        """
        Drops data pool temporary table.
        """
        self._db.query(
            caller=self.drop_data_pool_table.__name__,
            sql=f'DROP TABLE IF EXISTS {self.table_name};',
            vendor=DBVendor.PG
        )

        log(self._context, f'[{self.drop_data_pool_table.__name__}] table {self.table_name} is dropped...')

    def build_pools(self, tables: list[TableDescriptor]) -> int:
        """
        Partitions given tables into chunks and persists them as pending.
        Tables, that already have chunks, are skipped, so the pools are built at most once per table.
        Returns the number of created chunks.
        """
        chunked_tables = self._get_chunked_tables()
        chunks_cnt = 0

        for table in tables:
            if table.name in chunked_tables:
                continue

            criteria = self._plan_table_chunks(table)
            self._insert_chunks(table.name, criteria)
            chunks_cnt += len(criteria)
            msg = (f'[{self.build_pools.__name__}] "{self._context.schema}"."{table.name}":'
                   f' ~{table.rows_estimate} rows split into {len(criteria)} chunk(s)')

            log(self._context, msg, get_table_log_path(self._context, table.name))

        return chunks_cnt

    def _get_chunked_tables(self) -> set[str]:
        """
        Returns names of tables, that already have chunks in the data pool.
        """
        result = self._db.query(
            caller=self._get_chunked_tables.__name__,
            sql=f'SELECT DISTINCT "table_name" FROM {self.table_name};',
            vendor=DBVendor.PG,
            raise_on_error=True
        )

        return {row['table_name'] for row in cast(list[dict[str, Any]], result.data)}

    def _plan_table_chunks(self, table: TableDescriptor) -> list[dict[str, Any]]:
        """
        Chooses the chunking strategy for given table.
        """
        if table.rows_estimate < self._context.chunking_threshold:
            return plan_chunks(
                table.rows_estimate,
                table.avg_row_length,
                self._context.data_chunk_size_bytes,
                self._context.chunking_threshold
            )

        source_names = {column.name: column.source_name for column in table.columns}
        primary_key = table.primary_key

        if primary_key and len(primary_key.columns) == 1:
            pk_column = table.get_column(primary_key.columns[0])

            if pk_column and pk_column.source_type.name in INTEGER_TYPES:
                return plan_chunks(
                    table.rows_estimate,
                    table.avg_row_length,
                    self._context.data_chunk_size_bytes,
                    self._context.chunking_threshold,
                    pk_column=pk_column.source_name,
                    pk_bounds=self._get_pk_bounds(table, pk_column.source_name)
                )

        unique_key = self._get_unique_key(table)
        order_by_columns = unique_key or tuple(column.name for column in table.columns)

        if not unique_key:
            msg = (f'[{self._plan_table_chunks.__name__}] "{self._context.schema}"."{table.name}" has no'
                   f' unique key, its chunks are ordered by row hashes')

            log(self._context, msg, get_table_log_path(self._context, table.name))

        return plan_chunks(
            table.rows_estimate,
            table.avg_row_length,
            self._context.data_chunk_size_bytes,
            self._context.chunking_threshold,
            order_by=[source_names[column_name] for column_name in order_by_columns],
            is_hashed_order=not unique_key
        )

    @staticmethod
    def _get_unique_key(table: TableDescriptor) -> Optional[tuple[str, ...]]:
        """
        Returns columns of the PK, or of the first unique key over NOT NULL columns, if any.
        Such a key orders rows totally, ties are impossible.
        """
        if table.primary_key:
            return table.primary_key.columns

        for index in table.indexes:
            columns = [table.get_column(column_name) for column_name in index.columns]

            if index.kind == 'unique' and all(column and not column.nullable for column in columns):
                return index.columns

        return None

    def _get_pk_bounds(self, table: TableDescriptor, pk_column: str) -> Optional[tuple[int, int]]:
        """
        Returns the smallest and the largest primary key values of given source table.
        """
        result = self._db.query(
            caller=self._get_pk_bounds.__name__,
            sql=f'SELECT MIN(`{pk_column}`) AS min_value, MAX(`{pk_column}`) AS max_value FROM `{table.source_name}`;',
            vendor=DBVendor.MYSQL,
            raise_on_error=True
        )

        row = cast(list[dict[str, Any]], result.data)[0]

        if row['min_value'] is None or row['max_value'] is None:
            return None

        return int(row['min_value']), int(row['max_value'])

    def _insert_chunks(self, table_name: str, criteria: list[dict[str, Any]]) -> None:
        """
        Inserts all chunks of given table with a single statement.
        """
        values_sql = ','.join(['(%s, %s, %s)'] * len(criteria))
        bindings: list[Any] = []

        for chunk_number, criterion in enumerate(criteria):
            bindings.extend([table_name, chunk_number, json.dumps(criterion)])

        self._db.query(
            caller=self._insert_chunks.__name__,
            sql=(f'INSERT INTO {self.table_name}("table_name", "chunk_number", "metadata") VALUES {values_sql}'
                 f' ON CONFLICT ("table_name", "chunk_number") DO NOTHING;'),
            vendor=DBVendor.PG,
            raise_on_error=True,
            bindings=tuple(bindings)
        )

    def next_chunk(self) -> Optional[ChunkRecord]:
        """
        Atomically claims a pending chunk, the least attempted one first.
        Returns None once there is nothing left to claim.
        """
        sql = f'''
            UPDATE {self.table_name} SET "status" = '{CHUNK_STATUS_IN_PROGRESS}'
            WHERE "status" = '{CHUNK_STATUS_PENDING}' AND "id" = (
                SELECT "id" FROM {self.table_name}
                WHERE "status" = '{CHUNK_STATUS_PENDING}'
                ORDER BY "attempts", "id"
                LIMIT 1
                FOR UPDATE SKIP LOCKED
            )
            RETURNING "id", "table_name", "chunk_number", "metadata", "status", "attempts";
        '''

        result = self._db.query(
            caller=self.next_chunk.__name__,
            sql=sql,
            vendor=DBVendor.PG,
            raise_on_error=True
        )

        rows = cast(list[dict[str, Any]], result.data)
        return _to_chunk_record(rows[0]) if rows else None

    def mark_done(self, chunk: ChunkRecord, rows_loaded: int, cursor: Any = None) -> None:
        """
        Marks given chunk as done.
        If a cursor is given, the statement runs inside its transaction and is committed by the cursor owner.
        """
        sql = (f'UPDATE {self.table_name} SET "status" = \'{CHUNK_STATUS_DONE}\','
               f' "rows_loaded" = %(rows_loaded)s, "last_error" = NULL WHERE "id" = %(id)s;')

        bindings = {'rows_loaded': rows_loaded, 'id': chunk.id}

        if cursor is not None:
            cursor.execute(sql, bindings)
            return

        self._db.query(
            caller=self.mark_done.__name__,
            sql=sql,
            vendor=DBVendor.PG,
            raise_on_error=True,
            bindings=bindings
        )

    def mark_failed(self, chunk: ChunkRecord, error: Exception, permanent: bool = False) -> str:
        """
        Registers a failed attempt of given chunk.
        The chunk returns to the pool while under the attempts ceiling, otherwise it is failed for good.
        Returns the new status.
        """
        sql = f'''
            UPDATE {self.table_name} SET
                "attempts" = "attempts" + 1,
                "last_error" = %(error)s,
                "status" = CASE
                    WHEN %(permanent)s OR "attempts" + 1 >= %(max_attempts)s THEN '{CHUNK_STATUS_FAILED}'
                    ELSE '{CHUNK_STATUS_PENDING}'
                END
            WHERE "id" = %(id)s
            RETURNING "status";
        '''

        result = self._db.query(
            caller=self.mark_failed.__name__,
            sql=sql,
            vendor=DBVendor.PG,
            raise_on_error=True,
            bindings={
                'error': str(error),
                'permanent': permanent,
                'max_attempts': self._context.max_chunk_attempts,
                'id': chunk.id,
            }
        )

        rows = cast(list[dict[str, Any]], result.data)
        return cast(str, rows[0]['status']) if rows else CHUNK_STATUS_FAILED

    def reset_in_progress_chunks(self) -> int:
        """
        Returns chunks, left "in-progress" by an interrupted run, to the pool.
        """
        result = self._db.query(
            caller=self.reset_in_progress_chunks.__name__,
            sql=(f'UPDATE {self.table_name} SET "status" = \'{CHUNK_STATUS_PENDING}\''
                 f' WHERE "status" = \'{CHUNK_STATUS_IN_PROGRESS}\' RETURNING "id";'),
            vendor=DBVendor.PG,
            raise_on_error=True
        )

        reset_cnt = len(result.data)

        if reset_cnt:
            msg = f'[{self.reset_in_progress_chunks.__name__}] {reset_cnt} interrupted chunk(s) returned to the pool'
            log(self._context, msg)

        return reset_cnt

    def get_counts(self) -> dict[str, int]:
        """
        Returns the number of chunks per status.
        """
        result = self._db.query(
            caller=self.get_counts.__name__,
            sql=f'SELECT "status", COUNT(1) AS cnt FROM {self.table_name} GROUP BY "status";',
            vendor=DBVendor.PG,
            raise_on_error=True
        )

        counts = {status: 0 for status in CHUNK_STATUSES}

        for row in cast(list[dict[str, Any]], result.data):
            counts[row['status']] = int(row['cnt'])

        return counts

    def get_failed_chunks(self) -> list[ChunkRecord]:
        """
        Returns chunks, that exhausted their attempts or failed permanently.
        """
        result = self._db.query(
            caller=self.get_failed_chunks.__name__,
            sql=(f'SELECT "id", "table_name", "chunk_number", "metadata", "status", "attempts"'
                 f' FROM {self.table_name} WHERE "status" = \'{CHUNK_STATUS_FAILED}\' ORDER BY "id";'),
            vendor=DBVendor.PG,
            raise_on_error=True
        )

        return [_to_chunk_record(row) for row in cast(list[dict[str, Any]], result.data)]

    def truncate(self) -> None:
        """
        Removes all chunks.
        """
        self._db.query(
            caller=self.truncate.__name__,
            sql=f'TRUNCATE TABLE {self.table_name};',
            vendor=DBVendor.PG,
            raise_on_error=True
        )
