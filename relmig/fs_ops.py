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
import json
import threading
from typing import Any, Optional

from relmig.migration_context import MigrationContext

_LOGS_PREFIX = '\t--[relmig]'

# Workers are threads, appends to the same log file must not interleave.
_write_lock = threading.Lock()


def create_logs_directory(context: MigrationContext) -> None:
    """
    Creates logs directory, along with the directory for views, that failed to be created.
    """
    for directory_path in (context.logs_dir_path, context.not_created_views_path):
        print(f'{_LOGS_PREFIX}[{create_logs_directory.__name__}] Creating directory {directory_path}...')
        os.makedirs(directory_path, exist_ok=True)


def get_table_log_path(context: MigrationContext, table_name: str) -> str:
    """
    Returns a path to the log file of given table.
    """
    return os.path.join(context.logs_dir_path, f'{table_name}.log')


def log(context: MigrationContext, message: str, table_log_path: Optional[str] = None) -> None:
    """
    Prints given message and appends it to "all.log" and, if given, to the log of a single table.
    """
    message = _LOGS_PREFIX + message
    print(message)
    _append(context.all_logs_path, f'\n{message}\n')

    if table_log_path:
        _append(table_log_path, f'\n{message}\n')


def generate_error(context: MigrationContext, message: str, sql: str = '') -> None:
    """
    Logs given error, along with the failed SQL, and appends it to "errors-only.log".
    """
    message = _LOGS_PREFIX + message + (f'\n\n\tSQL: {sql}\n\n' if sql else '')
    log(context, message)
    _append(context.error_logs_path, message)


def write_to_file(path: str, content: str) -> None:
    """
    Replaces the content of given file.
    """
    with open(path, 'w') as file:
        file.write(content)


def _append(path: str, message: str) -> None:
    """
    Appends given message to the log file.
    A log, that cannot be written, must not break the migration itself.
    """
    try:
        with _write_lock, open(path, 'a') as file:
            file.write(message)
    except OSError as e:
        print(f'{_LOGS_PREFIX}[{_append.__name__}] Cannot write to {path}: {repr(e)}')


def _read_json(path: str) -> Any:
    with open(path, 'r') as file:
        return json.load(file)


def read_config(base_dir: str, config_file_name: str = 'config.json') -> dict:
    """
    Reads the main configuration file, along with paths to the type maps and to the logs directory.
    """
    config_dir = os.path.join(base_dir, 'config')
    config = _read_json(os.path.join(config_dir, config_file_name))
    config['logs_dir_path'] = os.path.join(base_dir, 'logs_directory')
    config['data_types_map_addr'] = os.path.join(config_dir, 'data_types_map.json')
    config['index_types_map_addr'] = os.path.join(config_dir, 'index_types_map.json')
    return config


def read_extra_config(config: dict, base_dir: str) -> dict:
    """
    Reads "extra_config.json", if enabled.
    """
    config['extra_config'] = (_read_json(os.path.join(base_dir, 'config', 'extra_config.json'))
                              if config.get('enable_extra_config')
                              else None)

    return config


def read_data_types_map(config: dict) -> dict:
    return _read_json(config['data_types_map_addr'])


def read_index_types_map(config: dict) -> dict[str, str]:
    return _read_json(config['index_types_map_addr'])
