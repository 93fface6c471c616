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
import gc
import hashlib
import math
from functools import wraps
from typing import Callable, Any

import psutil

from relmig.fs_ops import log
from relmig.migration_context import MigrationContext


def get_index_of(needle: Any, haystack: Any) -> int:
    """
    Returns an index of given needle in the haystack.
    The haystack is either a list, a tuple or a string.
    If the needle not found - returns -1.
    """
    try:
        return haystack.index(needle)
    except ValueError:
        return -1


def quote_literal(value: str) -> str:
    """
    Returns given string as a single-quoted SQL literal.
    """
    return "'" + value.replace("'", "''") + "'"


# PostgreSQL truncates longer identifiers (NAMEDATALEN - 1).
_PG_MAX_IDENTIFIER_BYTES = 63


def get_pg_identifier(name: str, *qualifiers: str) -> str:
    """
    Returns given name if it fits into a PostgreSQL identifier.
    Otherwise the name is cut and suffixed with a short hash of the name and its qualifiers,
    so that distinct long names stay distinct after the truncation.
    """
    encoded_name = name.encode()

    if len(encoded_name) <= _PG_MAX_IDENTIFIER_BYTES:
        return name

    digest = hashlib.md5('.'.join((name,) + qualifiers).encode()).hexdigest()[:8]
    prefix = encoded_name[:_PG_MAX_IDENTIFIER_BYTES - len(digest) - 1].decode(errors='ignore')
    return f'{prefix}_{digest}'


def _get_process_memory_stats() -> tuple[int, int]:
    """
    Returns current memory stats in MB: rss, vms.
    """
    process_memory_stats = psutil.Process().memory_info()
    return (math.ceil(process_memory_stats.rss / 1024 / 1024),
            math.ceil(process_memory_stats.vms / 1024 / 1024))


def track_memory(func: Callable) -> Callable:
    """
    Decorator, intended to track memory used by the program.
    Notice, memory tracking works only in debug mode.
    """
    @wraps(func)
    def wrap(*args: Any, **kwargs: Any) -> Any:
        context = (args[0] if args else None) or kwargs.get('context')

        if not isinstance(context, MigrationContext):
            raise ValueError(f'[{func.__name__}] First track_memory.wrap argument must be of type MigrationContext')

        if not context.debug:
            func_result = func(*args, **kwargs)
            gc.collect()
            return func_result

        rss_before, vms_before = _get_process_memory_stats()
        log(context, f'[{func.__name__}] rss_before {rss_before} MB vms_before {vms_before} MB')
        func_result = func(*args, **kwargs)
        unreachable_objects = gc.collect()
        log(context, f'[{func.__name__}] gc.collect() found {unreachable_objects} unreachable objects')
        rss_after, vms_after = _get_process_memory_stats()
        log(context, f'[{func.__name__}] rss_after {rss_after} MB vms_after {vms_after} MB')
        return func_result
    return wrap
