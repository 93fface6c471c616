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
from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.fs_ops import log
from relmig.migration_context import MigrationContext


def create_schema(context: MigrationContext, db: DBAccess) -> None:
    """
    Creates a new PostgreSQL schema if it does not exist yet.
    """
    result = db.query(
        caller=create_schema.__name__,
        sql='SELECT schema_name FROM information_schema.schemata WHERE schema_name = %(schema)s;',
        vendor=DBVendor.PG,
        raise_on_error=True,
        should_return_client=True,
        bindings={'schema': context.schema}
    )

    if len(result.data) != 0:
        db.release_db_client(result.client)
        return

    db.query(
        caller=create_schema.__name__,
        sql=f'CREATE SCHEMA IF NOT EXISTS "{context.schema}";',
        vendor=DBVendor.PG,
        raise_on_error=True,
        should_return_client=False,
        client=result.client
    )

    log(context, f'[{create_schema.__name__}] Schema "{context.schema}" is created...')
