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
import io
import time
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import NamedTuple, Optional

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.errors import (
    MigrationError,
    PermanentDataError,
    ResourceExhaustionError,
    TransientTransferError,
    to_migration_error,
)
from relmig.fs_ops import log, generate_error, get_table_log_path
from relmig.migration_context import MigrationContext
from relmig.data_pool_manager import (
    DataPool,
    ChunkRecord,
    criterion_to_sql,
    CHUNK_STATUS_DONE,
    CHUNK_STATUS_FAILED,
    CHUNK_STATUS_PENDING,
    CHUNK_STATUS_IN_PROGRESS,
)
from relmig.columns_data_arranger import arrange_columns_data, get_row_transformer
from relmig.table import TableDescriptor
from relmig.utils import track_memory


class ChunkFailure(NamedTuple):
    table_name: str
    chunk_id: int
    chunk_number: int
    error_type: str
    message: str


class PipeSummary(NamedTuple):
    done: int
    failed: int
    pending: int
    in_progress: int
    retried: int
    rows_loaded: int
    failures: tuple[ChunkFailure, ...]
    stopped: bool

    @property
    def is_complete(self) -> bool:
        """
        Every chunk is done and nothing is left to retry.
        """
        return self.failed == 0 and self.pending == 0 and self.in_progress == 0 and not self.stopped


class _WorkerOutcome(NamedTuple):
    rows_loaded: int
    retried: int
    failures: list[ChunkFailure]


@track_memory
def run(
    context: MigrationContext,
    db: DBAccess,
    pool: DataPool,
    tables: list[TableDescriptor],
    max_parallel: int
) -> PipeSummary:
    """
    Drains the data pool with a fixed set of workers.
    Each worker claims chunks one by one, until the pool is empty or a stop is requested.
    """
    tables_by_name = {table.name: table for table in tables}
    pending_cnt = pool.get_counts()[CHUNK_STATUS_PENDING]
    stop = threading.Event()
    outcomes: list[_WorkerOutcome] = []

    if pending_cnt > 0:
        number_of_workers = max(1, min(max_parallel, context.max_each_db_connection_pool_size, pending_cnt))
        log(context, f'[{run.__name__}] Loading {pending_cnt} chunk(s) with {number_of_workers} worker(s)...')

        with ThreadPoolExecutor(max_workers=number_of_workers) as executor:
            futures = [
                executor.submit(_worker, context, db, pool, tables_by_name, stop)
                for _ in range(number_of_workers)
            ]

        for future in futures:
            try:
                outcomes.append(future.result())
            except Exception as e:
                generate_error(context, f'[{run.__name__}] {repr(e)}')

    counts = pool.get_counts()
    summary = PipeSummary(
        done=counts[CHUNK_STATUS_DONE],
        failed=counts[CHUNK_STATUS_FAILED],
        pending=counts[CHUNK_STATUS_PENDING],
        in_progress=counts[CHUNK_STATUS_IN_PROGRESS],
        retried=sum(outcome.retried for outcome in outcomes),
        rows_loaded=sum(outcome.rows_loaded for outcome in outcomes),
        failures=tuple(failure for outcome in outcomes for failure in outcome.failures),
        stopped=stop.is_set()
    )

    msg = (f'[{run.__name__}] Chunks done: {summary.done}, failed: {summary.failed}, pending: {summary.pending},'
           f' in progress: {summary.in_progress}, retried: {summary.retried}, rows loaded: {summary.rows_loaded}')

    log(context, msg)
    return summary


def _worker(
    context: MigrationContext,
    db: DBAccess,
    pool: DataPool,
    tables_by_name: dict[str, TableDescriptor],
    stop: threading.Event
) -> _WorkerOutcome:
    """
    Claims and loads chunks until there is nothing left to claim.
    Keeps its own counters, nothing is shared with other workers, except the pool.
    """
    rows_loaded, retried, failures = 0, 0, []

    while not stop.is_set():
        try:
            chunk = _claim_next_chunk(context, pool)
        except MigrationError as e:
            generate_error(context, f'[{_worker.__name__}] Cannot claim a chunk: {e}')

            if isinstance(e, ResourceExhaustionError):
                stop.set()

            break

        if chunk is None:
            break

        try:
            table = tables_by_name.get(chunk.table_name)

            if table is None:
                raise PermanentDataError('Table is not migrated', table_name=chunk.table_name, chunk_id=chunk.id)

            rows_loaded += load_chunk(context, db, pool, table, chunk)
        except MigrationError as e:
            generate_error(context, f'[{_worker.__name__}] {type(e).__name__}: {e}')

            try:
                status = _register_failure(pool, chunk, e, stop)
            except MigrationError as mark_error:
                generate_error(context, f'[{_worker.__name__}] Cannot register a failure: {mark_error}')
                break

            if status == CHUNK_STATUS_FAILED:
                failures.append(ChunkFailure(
                    table_name=chunk.table_name,
                    chunk_id=chunk.id,
                    chunk_number=chunk.chunk_number,
                    error_type=type(e).__name__,
                    message=str(e)
                ))
            else:
                retried += 1
                time.sleep(context.retry_delay)

    return _WorkerOutcome(rows_loaded, retried, failures)


def _claim_next_chunk(context: MigrationContext, pool: DataPool) -> Optional[ChunkRecord]:
    """
    Claims a chunk, retrying on transient errors.
    """
    attempt = 1

    while True:
        try:
            return pool.next_chunk()
        except TransientTransferError as e:
            if attempt >= context.max_chunk_attempts:
                raise

            log(context, f'[{_claim_next_chunk.__name__}] Attempt #{attempt} failed: {e}. Retrying...')
            attempt += 1
            time.sleep(context.retry_delay)


def _register_failure(pool: DataPool, chunk: ChunkRecord, error: MigrationError, stop: threading.Event) -> str:
    """
    Registers a failed chunk according to the error class.
    Resource exhaustion stops claiming of new chunks, in-flight ones are let to finish.
    Returns the new chunk status.
    """
    if isinstance(error, PermanentDataError):
        return pool.mark_failed(chunk, error, permanent=True)

    if isinstance(error, ResourceExhaustionError):
        stop.set()

    return pool.mark_failed(chunk, error)


def load_chunk(
    context: MigrationContext,
    db: DBAccess,
    pool: DataPool,
    table: TableDescriptor,
    chunk: ChunkRecord
) -> int:
    """
    Transfers a single chunk using "PostgreSQL COPY".
    The data and the "done" status of the chunk are committed in the same transaction.
    Returns the number of loaded rows.
    """
    log_path = get_table_log_path(context, table.name)
    sql = f'SELECT {arrange_columns_data(table.columns)} FROM `{table.source_name}`{criterion_to_sql(chunk.criterion)};'
    column_names = ','.join([f'"{column.name}"' for column in table.columns])
    sql_copy = (f'COPY "{context.schema}"."{table.name}"({column_names}) FROM STDIN'
                f' WITH(FORMAT text, DELIMITER \'\t\', ENCODING \'{context.target_con_string["charset"]}\');')

    transform_row = get_row_transformer(table.columns, context.encoding)
    pg_client, pg_cursor, rows_loaded = None, None, 0

    try:
        pg_client = db.get_db_client(DBVendor.PG)
        pg_cursor = pg_client.cursor()

        if context.should_migrate_only_data():
            # Disables triggers and rules for current transaction only.
            pg_cursor.execute('SET LOCAL session_replication_role = replica;')

        for batch in db.stream_batches(load_chunk.__name__, sql, context.batch_size):
            text_stream = io.StringIO('\n'.join([transform_row(row) for row in batch]) + '\n')
            pg_cursor.copy_expert(sql=sql_copy, file=text_stream)
            text_stream.close()
            rows_loaded += len(batch)

        pool.mark_done(chunk, rows_loaded, pg_cursor)
        pg_client.commit()
    except Exception as e:
        if pg_client:
            try:
                pg_client.rollback()
            except Exception as rollback_error:
                generate_error(context, f'[{load_chunk.__name__}] Rollback failed: {repr(rollback_error)}')

        raise to_migration_error(e, table_name=table.name, chunk_id=chunk.id) from e
    finally:
        if pg_cursor:
            pg_cursor.close()

        db.release_db_client(pg_client)

    msg = (f'[{load_chunk.__name__}] Chunk #{chunk.chunk_number} of "{context.schema}"."{table.name}"'
           f' is loaded: {rows_loaded} rows')

    log(context, msg, log_path)
    return rows_loaded
