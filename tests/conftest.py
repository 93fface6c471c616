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
"""
Shared fixtures.

FakeDBAccess stands in for the query execution boundary. Statements of the data pool and of the state
table are emulated in memory, dispatching on the caller name. Everything else is recorded.
"""
import os
import re
import json
import threading
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from relmig.db_access_query_result import DBAccessQueryResult
from relmig.errors import to_migration_error
from relmig.migration_context import MigrationContext
from relmig.migration_state_manager import PHASES
from relmig.table import ColumnDescriptor, IndexDescriptor, ForeignKeyDescriptor, SourceType, TableDescriptor

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


class FakeDBAccess:
    def __init__(self):
        self.lock = threading.Lock()
        self.chunks: list[dict[str, Any]] = []
        self.next_id = 1
        self.phases: Optional[dict[str, bool]] = None
        self.state_table_exists = False
        self.pool_table_exists = False
        self.pk_bounds: Optional[tuple[int, int]] = (1, 250000)
        self.executed: list[tuple[str, str]] = []
        self.errors: dict[str, list[Exception]] = {}
        self.failing_sql: dict[str, list[Exception]] = {}
        self.object_owners: dict[str, str] = {}

    def get_db_client(self, vendor: Any) -> MagicMock:
        return MagicMock()

    def release_db_client(self, client: Any) -> None:
        pass

    def close_connection_pools(self) -> None:
        pass

    def stream_batches(self, caller: str, sql: str, batch_size: int):
        return iter([])

    def query(
        self,
        caller: str,
        sql: str,
        vendor: Any,
        raise_on_error: bool = False,
        should_return_client: bool = False,
        client: Any = None,
        bindings: Any = None
    ) -> DBAccessQueryResult:
        with self.lock:
            error = self._pop_error(caller, sql)

            if error is None:
                data = self._dispatch(caller, sql, bindings)

        if error is not None:
            if raise_on_error:
                raise to_migration_error(error) from error

            return DBAccessQueryResult(client=None, data=None, error=error)

        return DBAccessQueryResult(client=MagicMock() if should_return_client else None, data=data, error=None)

    def _pop_error(self, caller: str, sql: str) -> Optional[Exception]:
        if self.errors.get(caller):
            return self.errors[caller].pop(0)

        for fragment, errors in self.failing_sql.items():
            if fragment in sql and errors:
                return errors.pop(0)

        return None

    def _dispatch(self, caller: str, sql: str, bindings: Any) -> list[dict[str, Any]]:
        handler = getattr(self, f'_handle_{caller.lstrip("_")}', None)

        if handler:
            return handler(sql, bindings)

        self.executed.append((caller, sql))
        return []

    # Data pool.

    def _handle_create_data_pool_table(self, sql: str, bindings: Any) -> list:
        self.pool_table_exists = True
        return []

    def _handle_drop_data_pool_table(self, sql: str, bindings: Any) -> list:
        self.pool_table_exists = False
        self.chunks = []
        return []

    def _handle_get_chunked_tables(self, sql: str, bindings: Any) -> list:
        return [{'table_name': name} for name in sorted({chunk['table_name'] for chunk in self.chunks})]

    def _handle_get_pk_bounds(self, sql: str, bindings: Any) -> list:
        min_value, max_value = self.pk_bounds if self.pk_bounds else (None, None)
        return [{'min_value': min_value, 'max_value': max_value}]

    def _handle_insert_chunks(self, sql: str, bindings: Any) -> list:
        existing = {(chunk['table_name'], chunk['chunk_number']) for chunk in self.chunks}

        for position in range(0, len(bindings), 3):
            table_name, chunk_number, metadata = bindings[position:position + 3]

            if (table_name, chunk_number) in existing:
                continue

            self.chunks.append({
                'id': self.next_id,
                'table_name': table_name,
                'chunk_number': chunk_number,
                'metadata': json.loads(metadata),
                'status': 'pending',
                'attempts': 0,
                'last_error': None,
                'rows_loaded': None,
            })

            self.next_id += 1

        return []

    def _handle_next_chunk(self, sql: str, bindings: Any) -> list:
        pending = [chunk for chunk in self.chunks if chunk['status'] == 'pending']

        if not pending:
            return []

        chunk = min(pending, key=lambda item: (item['attempts'], item['id']))
        chunk['status'] = 'in-progress'
        return [dict(chunk)]

    def _handle_mark_done(self, sql: str, bindings: Any) -> list:
        chunk = self._get_chunk(bindings['id'])
        chunk.update(status='done', rows_loaded=bindings['rows_loaded'], last_error=None)
        return []

    def _handle_mark_failed(self, sql: str, bindings: Any) -> list:
        chunk = self._get_chunk(bindings['id'])
        chunk['attempts'] += 1
        chunk['last_error'] = bindings['error']
        is_failed = bindings['permanent'] or chunk['attempts'] >= bindings['max_attempts']
        chunk['status'] = 'failed' if is_failed else 'pending'
        return [{'status': chunk['status']}]

    def _handle_reset_in_progress_chunks(self, sql: str, bindings: Any) -> list:
        reset = [chunk for chunk in self.chunks if chunk['status'] == 'in-progress']

        for chunk in reset:
            chunk['status'] = 'pending'

        return [{'id': chunk['id']} for chunk in reset]

    def _handle_get_counts(self, sql: str, bindings: Any) -> list:
        counts: dict[str, int] = {}

        for chunk in self.chunks:
            counts[chunk['status']] = counts.get(chunk['status'], 0) + 1

        return [{'status': status, 'cnt': cnt} for status, cnt in counts.items()]

    def _handle_get_failed_chunks(self, sql: str, bindings: Any) -> list:
        return [dict(chunk) for chunk in self.chunks if chunk['status'] == 'failed']

    def _handle_truncate(self, sql: str, bindings: Any) -> list:
        self.chunks = []
        return []

    def _get_chunk(self, chunk_id: int) -> dict[str, Any]:
        return next(chunk for chunk in self.chunks if chunk['id'] == chunk_id)

    # State table.

    def _handle_ensure_state_table(self, sql: str, bindings: Any) -> list:
        if sql.startswith('CREATE TABLE'):
            self.state_table_exists = True
            return []

        if sql.startswith('SELECT COUNT'):
            return [{'cnt': 0 if self.phases is None else 1}]

        if sql.startswith('INSERT'):
            self.phases = {phase: False for phase in PHASES}

        return []

    def _handle_get_phase(self, sql: str, bindings: Any) -> list:
        return [dict(self.phases)] if self.phases is not None else []

    def _handle_set_phase(self, sql: str, bindings: Any) -> list:
        for phase in re.findall(r'"(\w+)" = TRUE', sql):
            self.phases[phase] = True

        return []

    def _handle_reset(self, sql: str, bindings: Any) -> list:
        self.phases = {phase: False for phase in PHASES}
        return []

    def _handle_drop_state_table(self, sql: str, bindings: Any) -> list:
        self.state_table_exists = False
        self.phases = None
        return []

    # Target catalog.

    def _handle_get_owner_table_names(self, sql: str, bindings: Any) -> list:
        owner = self.object_owners.get(bindings['name'])
        return [{'table_name': owner}] if owner else []

    def get_statuses(self) -> dict[int, str]:
        return {chunk['chunk_number']: chunk['status'] for chunk in self.chunks}


def _read_json(file_name: str) -> dict:
    with open(os.path.join(BASE_DIR, 'config', file_name), 'r') as file:
        return json.load(file)


@pytest.fixture
def data_types_map() -> dict:
    return _read_json('data_types_map.json')


@pytest.fixture
def index_types_map() -> dict:
    return _read_json('index_types_map.json')


@pytest.fixture
def config(tmp_path) -> dict:
    """Minimal valid configuration, logging into a temporary directory."""
    return {
        'source': {
            'host': 'localhost', 'port': 3306, 'database': 'shop',
            'charset': 'utf8mb4', 'user': 'root', 'password': 'secret',
        },
        'target': {
            'host': 'localhost', 'port': 5432, 'database': 'shop',
            'charset': 'UTF8', 'user': 'postgres', 'password': 'secret',
        },
        'schema': 'public',
        'logs_dir_path': str(tmp_path),
        'data_chunk_size': 1,
        'chunking_threshold': 100000,
        'max_chunk_attempts': 3,
        'retry_delay': 0,
        'number_of_simultaneously_running_loader_processes': 4,
    }


@pytest.fixture
def make_context(config, data_types_map, index_types_map):
    """Factory, building a context with some of the configuration overridden."""
    def _make_context(**overrides: Any) -> MigrationContext:
        return MigrationContext({**config, **overrides}, data_types_map, index_types_map)

    return _make_context


@pytest.fixture
def context(make_context) -> MigrationContext:
    return make_context()


@pytest.fixture
def fake_db() -> FakeDBAccess:
    return FakeDBAccess()


def make_column(
    name: str,
    target_type: str = 'integer',
    source_type: Optional[SourceType] = None,
    transform: str = 'none',
    nullable: bool = True,
    default: Optional[str] = None,
    is_auto_increment: bool = False,
    comment: str = '',
    is_default_generated: bool = False
) -> ColumnDescriptor:
    return ColumnDescriptor(
        name=name,
        source_name=name,
        source_type=source_type or SourceType('int'),
        nullable=nullable,
        default=default,
        is_auto_increment=is_auto_increment,
        comment=comment,
        target_type=target_type,
        transform=transform,
        is_default_generated=is_default_generated
    )


def make_table(
    name: str,
    columns: Optional[tuple[ColumnDescriptor, ...]] = None,
    indexes: tuple[IndexDescriptor, ...] = (),
    foreign_keys: tuple[ForeignKeyDescriptor, ...] = (),
    rows_estimate: int = 10,
    avg_row_length: int = 20,
    comment: str = ''
) -> TableDescriptor:
    return TableDescriptor(
        source_name=name,
        name=name,
        columns=columns or (make_column('id', nullable=False, is_auto_increment=True),),
        indexes=indexes or (IndexDescriptor('PRIMARY', 'primary', ('id',)),),
        foreign_keys=foreign_keys,
        rows_estimate=rows_estimate,
        avg_row_length=avg_row_length,
        comment=comment
    )
