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
from typing import Optional, Type

import pymysql
import psycopg2
from dbutils.pooled_db import TooManyConnections


class MigrationError(Exception):
    """
    Base class for all migration errors.
    Every error is attributable to a table and, where applicable, to a chunk or a constraint.
    """
    def __init__(
        self,
        message: str,
        table_name: Optional[str] = None,
        chunk_id: Optional[int] = None,
        constraint_name: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.table_name = table_name
        self.chunk_id = chunk_id
        self.constraint_name = constraint_name

    def __str__(self) -> str:
        location = []

        if self.table_name:
            location.append(f'table "{self.table_name}"')

        if self.chunk_id is not None:
            location.append(f'chunk #{self.chunk_id}')

        if self.constraint_name:
            location.append(f'constraint "{self.constraint_name}"')

        return f'{self.message} ({", ".join(location)})' if location else self.message


class ConfigurationError(MigrationError):
    """Raised when the configuration fails validation at start-up."""


class FatalStructuralError(MigrationError):
    """Raised when the target structure cannot be created. Aborts the run before any data is moved."""


class TypeMappingError(FatalStructuralError):
    """Raised when a source column type has no target counterpart."""
    def __init__(self, message: str, column_name: str, table_name: Optional[str] = None):
        super().__init__(message, table_name=table_name)
        self.column_name = column_name

    def __str__(self) -> str:
        return f'{super().__str__()} column "{self.column_name}"'


class TransientTransferError(MigrationError):
    """Infrastructure failure (connection loss, lock wait, deadlock). Retry-eligible."""


class PermanentDataError(MigrationError):
    """Failure caused by the data itself. Requires operator intervention."""


class ResourceExhaustionError(MigrationError):
    """No more connections or server resources. New work must not be issued."""


# SQLSTATE classes and codes, see https://www.postgresql.org/docs/current/errcodes-appendix.html
_PG_TRANSIENT_CODES = ('40001', '40P01', '55P03', '55006', '57014', '57P01', '57P02', '57P03')
_PG_TRANSIENT_CLASSES = ('08',)
_PG_PERMANENT_CLASSES = ('22', '23')
_PG_RESOURCE_CLASSES = ('53',)
_PG_ALREADY_EXISTS_CODES = ('42P07', '42710', '42P16')

# MySQL server and client error codes.
_MYSQL_TRANSIENT_CODES = (1205, 1213, 2003, 2006, 2013, 2055)
_MYSQL_RESOURCE_CODES = (1040, 1041, 1203)


def _get_pg_code(error: Exception) -> str:
    """
    Returns SQLSTATE of given psycopg2 error, or an empty string.
    """
    return getattr(error, 'pgcode', None) or ''


def _get_mysql_code(error: Exception) -> int:
    """
    Returns MySQL error code of given pymysql error, or zero.
    """
    if error.args and isinstance(error.args[0], int):
        return error.args[0]

    return 0


def classify_error(error: Exception) -> Type[MigrationError]:
    """
    Maps a driver-level exception onto the migration error taxonomy.
    Unknown errors are treated as transient, the retry ceiling bounds them.
    """
    if isinstance(error, MigrationError):
        return type(error)

    if isinstance(error, TooManyConnections):
        return ResourceExhaustionError

    if isinstance(error, psycopg2.Error):
        pg_code = _get_pg_code(error)

        if pg_code[:2] in _PG_RESOURCE_CLASSES:
            return ResourceExhaustionError

        if pg_code in _PG_TRANSIENT_CODES or pg_code[:2] in _PG_TRANSIENT_CLASSES:
            return TransientTransferError

        if pg_code[:2] in _PG_PERMANENT_CLASSES:
            return PermanentDataError

        if isinstance(error, (psycopg2.OperationalError, psycopg2.InterfaceError)):
            # Connection-level errors carry no SQLSTATE.
            return TransientTransferError

        if isinstance(error, (psycopg2.IntegrityError, psycopg2.DataError)):
            return PermanentDataError

        return TransientTransferError

    if isinstance(error, pymysql.err.MySQLError):
        mysql_code = _get_mysql_code(error)

        if mysql_code in _MYSQL_RESOURCE_CODES:
            return ResourceExhaustionError

        if mysql_code in _MYSQL_TRANSIENT_CODES:
            return TransientTransferError

        if isinstance(error, (pymysql.err.IntegrityError, pymysql.err.DataError)):
            return PermanentDataError

        return TransientTransferError

    if isinstance(error, (UnicodeError, ValueError)):
        return PermanentDataError

    return TransientTransferError


def to_migration_error(
    error: Exception,
    table_name: Optional[str] = None,
    chunk_id: Optional[int] = None,
    constraint_name: Optional[str] = None
) -> MigrationError:
    """
    Wraps given exception into the appropriate MigrationError subclass.
    """
    if isinstance(error, MigrationError):
        return error

    error_class = classify_error(error)
    return error_class(
        f'{type(error).__name__}: {error}'.strip(),
        table_name=table_name,
        chunk_id=chunk_id,
        constraint_name=constraint_name,
    )


def is_already_exists(error: Exception) -> bool:
    """
    Checks if given error means that the object being created is already there.
    Happens when constraints are re-applied on a resumed run.
    """
    return isinstance(error, psycopg2.Error) and _get_pg_code(error) in _PG_ALREADY_EXISTS_CODES
