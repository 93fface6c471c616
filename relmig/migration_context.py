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
import math
from typing import Any, Optional, cast

from relmig.errors import ConfigurationError


class MigrationContext:
    """
    Configuration of a single migration run.
    Validated once, at construction time, and read-only afterwards.
    Shared by all components and all worker threads.
    """
    config: dict
    source_con_string: dict
    target_con_string: dict
    logs_dir_path: str
    all_logs_path: str
    error_logs_path: str
    not_created_views_path: str
    data_types_map: dict
    index_types_map: dict[str, str]
    extra_config: dict
    include_tables: list[str]
    exclude_tables: list[str]
    no_vacuum: list[str]
    source_db_name: str
    schema: str
    encoding: str
    max_each_db_connection_pool_size: int
    max_parallel_chunk_transfers: int
    max_parallel_ddl_operations: int
    data_chunk_size: float
    chunking_threshold: int
    batch_size: int
    max_chunk_attempts: int
    retry_delay: float
    remove_transient_tables: bool
    reset_state: bool
    migrate_only_data: bool
    debug: bool
    _frozen: bool

    __slots__ = (
        'config', 'source_con_string', 'target_con_string', 'logs_dir_path', 'all_logs_path', 'error_logs_path',
        'not_created_views_path', 'data_types_map', 'index_types_map', 'extra_config', 'include_tables',
        'exclude_tables', 'no_vacuum', 'source_db_name', 'schema', 'encoding', 'max_each_db_connection_pool_size',
        'max_parallel_chunk_transfers', 'max_parallel_ddl_operations', 'data_chunk_size', 'chunking_threshold',
        'batch_size', 'max_chunk_attempts', 'retry_delay', 'remove_transient_tables', 'reset_state',
        'migrate_only_data', 'debug', '_frozen',
    )

    def __init__(
        self,
        config: dict,
        data_types_map: Optional[dict] = None,
        index_types_map: Optional[dict[str, str]] = None
    ):
        """
        MigrationContext class constructor.
        """
        self._frozen = False
        self.config = config
        self.source_con_string = self._get_connection_details('source')
        self.target_con_string = self._get_connection_details('target')
        self.logs_dir_path = self.config.get('logs_dir_path', os.path.join(os.getcwd(), 'logs_directory'))
        self.all_logs_path = os.path.join(self.logs_dir_path, 'all.log')
        self.error_logs_path = os.path.join(self.logs_dir_path, 'errors-only.log')
        self.not_created_views_path = os.path.join(self.logs_dir_path, 'not_created_views')
        self.data_types_map = data_types_map or {}
        self.index_types_map = index_types_map or {}
        self.extra_config = self.config.get('extra_config') or {}
        self.include_tables = self.config.get('include_tables') or []
        self.exclude_tables = self.config.get('exclude_tables') or []
        self.no_vacuum = self.config.get('no_vacuum') or []
        self.source_db_name = self.source_con_string['database']
        self.schema = self.config.get('schema') or self.source_db_name
        self.encoding = self.config.get('encoding') or 'utf8'
        self.max_each_db_connection_pool_size = self._get_positive_int('max_each_db_connection_pool_size', 20)
        self.max_parallel_chunk_transfers = self._get_positive_int(
            'number_of_simultaneously_running_loader_processes',
            4
        )

        self.max_parallel_ddl_operations = self._get_positive_int('max_parallel_ddl_operations', 10)
        self.data_chunk_size = self._get_positive_number('data_chunk_size', 10.0)
        self.chunking_threshold = self._get_positive_int('chunking_threshold', 100000)
        self.batch_size = self._get_positive_int('batch_size', 30000)
        self.max_chunk_attempts = self._get_positive_int('max_chunk_attempts', 3)
        self.retry_delay = self._get_non_negative_number('retry_delay', 1.0)
        self.remove_transient_tables = bool(self.config.get('remove_transient_tables', True))
        self.reset_state = bool(self.config.get('reset_state', False))
        self.migrate_only_data = bool(self.config.get('migrate_only_data', False))
        self.debug = bool(self.config.get('debug', False))

        if self.max_parallel_chunk_transfers > self.max_each_db_connection_pool_size:
            # Every transfer holds a dedicated target connection.
            raise ConfigurationError(
                'number_of_simultaneously_running_loader_processes must not exceed max_each_db_connection_pool_size'
            )

        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, '_frozen', False):
            raise AttributeError(f'MigrationContext is read-only, cannot set "{name}"')

        object.__setattr__(self, name, value)

    def _get_connection_details(self, key: str) -> dict:
        """
        Validates connection details of either source or target database.
        """
        connection_details = self.config.get(key)

        if not isinstance(connection_details, dict):
            raise ConfigurationError(f'Connection details "{key}" are missing')

        missing = [
            attribute
            for attribute in ('host', 'port', 'user', 'password', 'database')
            if attribute not in connection_details
        ]

        if missing:
            raise ConfigurationError(f'Connection details "{key}" lack: {", ".join(missing)}')

        return {'charset': 'utf8', **connection_details}

    def _get_positive_int(self, key: str, default: int) -> int:
        """
        Parses an integer config parameter.
        Accepts ints, numeric strings and the "DEFAULT" placeholder.
        """
        value = self.config.get(key)

        if value is None or value == 'DEFAULT':
            return default

        try:
            parsed_value = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f'Config parameter "{key}" must be an integer, got {value!r}')

        if parsed_value <= 0:
            raise ConfigurationError(f'Config parameter "{key}" must be positive, got {value!r}')

        return parsed_value

    def _get_positive_number(self, key: str, default: float) -> float:
        """
        Parses a positive numeric config parameter.
        """
        parsed_value = self._get_non_negative_number(key, default)

        if parsed_value == 0:
            raise ConfigurationError(f'Config parameter "{key}" must be positive')

        return parsed_value

    def _get_non_negative_number(self, key: str, default: float) -> float:
        """
        Parses a non-negative numeric config parameter.
        """
        value = self.config.get(key)

        if value is None:
            return default

        try:
            parsed_value = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f'Config parameter "{key}" must be a number, got {value!r}')

        if parsed_value < 0 or math.isnan(parsed_value):
            raise ConfigurationError(f'Config parameter "{key}" must not be negative, got {value!r}')

        return parsed_value

    @property
    def data_chunk_size_bytes(self) -> int:
        """
        Per-chunk size in bytes.
        """
        return cast(int, math.floor(self.data_chunk_size * 1024 * 1024))

    @property
    def data_pool_table_name(self) -> str:
        return f'"{self.schema}"."data_pool_{self.schema}{self.source_db_name}"'

    @property
    def state_logs_table_name(self) -> str:
        return f'"{self.schema}"."state_logs_{self.schema}{self.source_db_name}"'

    def should_migrate_only_data(self) -> bool:
        """
        Checks if there are actions to take other than data migration.
        """
        return self.migrate_only_data
