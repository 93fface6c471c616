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
Tests for the migration error taxonomy.
"""
import psycopg2
import pymysql
import pytest
from dbutils.pooled_db import TooManyConnections

from relmig.errors import (
    MigrationError,
    PermanentDataError,
    ResourceExhaustionError,
    TransientTransferError,
    classify_error,
    to_migration_error,
    is_already_exists,
)


def _pg_error(pgcode, base=psycopg2.Error):
    return type('PgError', (base,), {'pgcode': pgcode})()


class TestClassifyError:
    """Mapping of driver errors onto error classes."""

    @pytest.mark.parametrize('pgcode, expected', [
        ('40P01', TransientTransferError),
        ('08006', TransientTransferError),
        ('57P01', TransientTransferError),
        ('53300', ResourceExhaustionError),
        ('53200', ResourceExhaustionError),
        ('22P02', PermanentDataError),
        ('23505', PermanentDataError),
    ])
    def test_pg_codes(self, pgcode, expected):
        assert classify_error(_pg_error(pgcode)) is expected

    @pytest.mark.parametrize('error, expected', [
        (psycopg2.OperationalError('server closed the connection'), TransientTransferError),
        (psycopg2.IntegrityError('duplicate key'), PermanentDataError),
        (psycopg2.DataError('invalid input syntax'), PermanentDataError),
    ])
    def test_pg_error_classes(self, error, expected):
        assert classify_error(error) is expected

    @pytest.mark.parametrize('error, expected', [
        (pymysql.err.OperationalError(1213, 'Deadlock found'), TransientTransferError),
        (pymysql.err.OperationalError(2013, 'Lost connection'), TransientTransferError),
        (pymysql.err.OperationalError(1040, 'Too many connections'), ResourceExhaustionError),
        (pymysql.err.DataError(1366, 'Incorrect string value'), PermanentDataError),
    ])
    def test_mysql_errors(self, error, expected):
        assert classify_error(error) is expected

    def test_pool_exhaustion(self):
        assert classify_error(TooManyConnections()) is ResourceExhaustionError

    def test_decoding_error(self):
        assert classify_error(UnicodeDecodeError('utf-8', b'\xff', 0, 1, 'invalid start byte')) is PermanentDataError

    def test_unknown_error_is_transient(self):
        assert classify_error(RuntimeError('surprise')) is TransientTransferError


class TestToMigrationError:
    """Wrapping of driver errors."""

    def test_carries_location(self):
        error = to_migration_error(psycopg2.DataError('bad value'), table_name='orders', chunk_id=4)

        assert isinstance(error, PermanentDataError)
        assert error.table_name == 'orders'
        assert error.chunk_id == 4
        assert str(error) == 'DataError: bad value (table "orders", chunk #4)'

    def test_migration_error_is_kept(self):
        error = TransientTransferError('timeout')

        assert to_migration_error(error, table_name='orders') is error

    def test_constraint_location(self):
        error = MigrationError('failed', table_name='users', constraint_name='users_pkey')

        assert str(error) == 'failed (table "users", constraint "users_pkey")'


@pytest.mark.parametrize('pgcode, expected', [
    ('42P07', True),
    ('42710', True),
    ('42P16', True),
    ('23505', False),
])
def test_is_already_exists(pgcode, expected):
    assert is_already_exists(_pg_error(pgcode)) is expected


def test_mysql_error_is_never_already_exists():
    assert not is_already_exists(pymysql.err.OperationalError(1050, "Table 't' already exists"))
