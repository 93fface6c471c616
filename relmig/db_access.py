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
import threading
from typing import Iterator, Optional, Union

import pymysql
from pymysql.connections import Connection as PymysqlConnection
import psycopg2
from psycopg2.extras import RealDictCursor
from dbutils.pooled_db import PooledDB, PooledDedicatedDBConnection

from relmig.db_access_query_result import DBAccessQueryResult
from relmig.db_vendor import DBVendor
from relmig.errors import to_migration_error
from relmig.fs_ops import generate_error
from relmig.migration_context import MigrationContext


class DBAccess:
    """
    Query execution boundary.
    Owns both connection pools, which are created lazily, on first demand.
    """
    def __init__(self, context: MigrationContext):
        self._context = context
        self._mysql: Optional[PooledDB] = None
        self._pg: Optional[PooledDB] = None
        self._pools_lock = threading.Lock()

    def _get_pooled_db(self, db_vendor: DBVendor) -> PooledDB:
        """
        Creates DBUtils.PooledDB instance.
        """
        db_connection_details = (self._context.source_con_string
                                 if db_vendor == DBVendor.MYSQL
                                 else self._context.target_con_string)

        connection_details = {
            # Basic connection details.
            'port': db_connection_details['port'],
            'host': db_connection_details['host'],
            'user': db_connection_details['user'],
            'password': db_connection_details['password'],
            'database': db_connection_details['database'],

            # Blocks and waits until the number of connections decreases, instead of raising.
            'blocking': True,

            # Maximum number of idle connections in the pool.
            'maxcached': self._context.max_each_db_connection_pool_size,

            # Maximum number of allowed connections.
            'maxconnections': self._context.max_each_db_connection_pool_size,
        }

        if db_vendor == DBVendor.MYSQL:
            connection_details.update({
                'creator': pymysql,
                'cursorclass': pymysql.cursors.DictCursor,
                'charset': db_connection_details['charset'],
            })
        else:
            connection_details.update({
                'creator': psycopg2,
                'client_encoding': db_connection_details['charset'],
            })

        return PooledDB(**connection_details)

    def _ensure_pool(self, db_vendor: DBVendor) -> PooledDB:
        """
        Ensures connection pool existence.
        """
        with self._pools_lock:
            if db_vendor == DBVendor.MYSQL:
                self._mysql = self._mysql or self._get_pooled_db(DBVendor.MYSQL)
                return self._mysql

            self._pg = self._pg or self._get_pooled_db(DBVendor.PG)
            return self._pg

    def close_connection_pools(self) -> None:
        """
        Closes both connection-pools.
        """
        for pool in (self._mysql, self._pg):
            if pool:
                try:
                    pool.close()
                except Exception as e:
                    generate_error(self._context, f'[{self.close_connection_pools.__name__}] {repr(e)}')

        self._mysql, self._pg = None, None

    def get_mysql_unbuffered_client(self) -> PymysqlConnection:
        """
        Returns MySQL unbuffered client.
        Rows are streamed from the server, instead of being loaded into memory at once.
        """
        return pymysql.connect(
            port=self._context.source_con_string['port'],
            host=self._context.source_con_string['host'],
            user=self._context.source_con_string['user'],
            password=self._context.source_con_string['password'],
            charset=self._context.source_con_string['charset'],
            db=self._context.source_con_string['database'],
            cursorclass=pymysql.cursors.SSCursor
        )

    def get_db_client(self, db_vendor: DBVendor) -> PooledDedicatedDBConnection:
        """
        Obtains PooledDedicatedDBConnection instance.
        Returned PooledDedicatedDBConnection instance is non-shareable, dedicated connection.
        """
        return self._ensure_pool(db_vendor).connection(shareable=False)  # type: ignore

    def release_db_client(self, client: Optional[PooledDedicatedDBConnection]) -> None:
        """
        Releases MySQL or PostgreSQL connection back to appropriate pool.
        """
        if client:
            try:
                client.close()
            except Exception as e:
                generate_error(self._context, f'[{self.release_db_client.__name__}] {repr(e)}')

    def _rollback(self, client: PooledDedicatedDBConnection) -> None:
        """
        Rolls back current transaction of given client, so the client can be reused.
        """
        try:
            client.rollback()
        except Exception as e:
            generate_error(self._context, f'[{self._rollback.__name__}] {repr(e)}')

    def query(
        self,
        caller: str,
        sql: str,
        vendor: DBVendor,
        raise_on_error: bool = False,
        should_return_client: bool = False,
        client: Optional[PooledDedicatedDBConnection] = None,
        bindings: Optional[Union[dict, tuple, list]] = None
    ) -> DBAccessQueryResult:
        """
        Sends given SQL query to specified DB, commits it.
        Performs appropriate actions (requesting/releasing client) against target connections pool.
        If raise_on_error is set, failures are raised as classified MigrationError.
        """
        cursor, data, error = None, None, None

        try:
            if not client:
                # The client must be requested from the connection pool.
                client = self.get_db_client(vendor)

            cursor = client.cursor(cursor_factory=RealDictCursor) if vendor == DBVendor.PG else client.cursor()

            if bindings is not None:
                cursor.execute(sql, bindings)
            else:
                cursor.execute(sql)

            data = cursor.fetchall() if cursor.description else []
            client.commit()
        except Exception as e:
            error = e
            generate_error(self._context, f'[{caller}] {repr(e)}', sql)

            if client:
                self._rollback(client)
        finally:
            if cursor:
                cursor.close()

        if not should_return_client or (error and raise_on_error):
            self.release_db_client(client)
            client = None

        if error and raise_on_error:
            raise to_migration_error(error) from error

        return DBAccessQueryResult(client=client, data=data, error=error)

    def query_without_transaction(self, caller: str, sql: str) -> DBAccessQueryResult:
        """
        Sends given query to the target PostgreSQL database without wrapping it with transaction.
        Uses a separate autocommit connection, since statements like VACUUM cannot run inside a transaction block.
        """
        client, cursor, error = None, None, None

        try:
            client = psycopg2.connect(
                port=self._context.target_con_string['port'],
                host=self._context.target_con_string['host'],
                user=self._context.target_con_string['user'],
                password=self._context.target_con_string['password'],
                database=self._context.target_con_string['database'],
                client_encoding=self._context.target_con_string['charset']
            )

            client.autocommit = True
            cursor = client.cursor()
            cursor.execute(sql)
        except Exception as e:
            error = e
            generate_error(self._context, f'[{caller}] {repr(e)}', sql)
        finally:
            if cursor:
                cursor.close()

            if client:
                client.close()

        return DBAccessQueryResult(client=None, data=None, error=error)

    def stream_batches(self, caller: str, sql: str, batch_size: int) -> Iterator[list[tuple]]:
        """
        Streams rows of given SELECT statement from the source database, batch by batch.
        Uses a dedicated unbuffered client, closed once the stream is exhausted or abandoned.
        """
        client = self.get_mysql_unbuffered_client()
        cursor = client.cursor()

        try:
            cursor.execute(sql)

            while True:
                rows = cursor.fetchmany(batch_size)

                if not rows:
                    break

                yield list(rows)
        except Exception as e:
            generate_error(self._context, f'[{caller}] {repr(e)}', sql)
            raise
        finally:
            cursor.close()
            client.close()
