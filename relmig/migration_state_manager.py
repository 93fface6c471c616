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
from typing import NamedTuple, Any, cast

from relmig.db_access import DBAccess
from relmig.db_vendor import DBVendor
from relmig.fs_ops import log
from relmig.migration_context import MigrationContext
from relmig.data_pool_manager import DataPool

STRUCTURE_LOADED = 'structure_loaded'
DATA_LOADED = 'data_loaded'
BINARY_DATA_DECODED = 'binary_data_decoded'
CONSTRAINTS_APPLIED = 'constraints_applied'

PHASES = (STRUCTURE_LOADED, DATA_LOADED, BINARY_DATA_DECODED, CONSTRAINTS_APPLIED)


class MigrationPhaseState(NamedTuple):
    structure_loaded: bool = False
    data_loaded: bool = False
    binary_data_decoded: bool = False
    constraints_applied: bool = False

    @property
    def is_complete(self) -> bool:
        return all(self)


def ensure_state_table(context: MigrationContext, db: DBAccess) -> None:
    """
    Creates the "{schema}"."state_logs_{schema + source_db_name}" temporary table, if it does not exist yet.
    """
    table_name = context.state_logs_table_name
    columns = ', '.join([f'"{phase}" BOOLEAN NOT NULL DEFAULT FALSE' for phase in PHASES])
    result = db.query(
        caller=ensure_state_table.__name__,
        sql=f'CREATE TABLE IF NOT EXISTS {table_name}({columns});',
        vendor=DBVendor.PG,
        raise_on_error=True,
        should_return_client=True
    )

    result = db.query(
        caller=ensure_state_table.__name__,
        sql=f'SELECT COUNT(1) AS cnt FROM {table_name};',
        vendor=DBVendor.PG,
        raise_on_error=True,
        should_return_client=True,
        client=result.client
    )

    msg = f'[{ensure_state_table.__name__}] Table {table_name}'

    if cast(list[dict[str, Any]], result.data)[0]['cnt'] == 0:
        db.query(
            caller=ensure_state_table.__name__,
            sql=f'INSERT INTO {table_name} VALUES ({", ".join(["FALSE"] * len(PHASES))});',
            vendor=DBVendor.PG,
            raise_on_error=True,
            should_return_client=False,
            client=result.client
        )

        msg += ' is created'
    else:
        db.release_db_client(result.client)
        msg += ' already exists'

    log(context, msg)


def get_phase(context: MigrationContext, db: DBAccess) -> MigrationPhaseState:
    """
    Retrieves the state of all migration phases.
    """
    columns = ', '.join([f'"{phase}"' for phase in PHASES])
    result = db.query(
        caller=get_phase.__name__,
        sql=f'SELECT {columns} FROM {context.state_logs_table_name};',
        vendor=DBVendor.PG,
        raise_on_error=True
    )

    records = cast(list[dict[str, Any]], result.data)

    if not records:
        return MigrationPhaseState()

    return MigrationPhaseState(**{phase: bool(records[0][phase]) for phase in PHASES})


def set_phase(context: MigrationContext, db: DBAccess, *phases: str) -> None:
    """
    Marks given phases as completed.
    Phases are never unset, except by an explicit reset.
    """
    unknown_phases = [phase for phase in phases if phase not in PHASES]

    if unknown_phases:
        raise ValueError(f'[{set_phase.__name__}] Unknown migration phase(s): {", ".join(unknown_phases)}')

    states_sql = ', '.join([f'"{phase}" = TRUE' for phase in phases])
    db.query(
        caller=set_phase.__name__,
        sql=f'UPDATE {context.state_logs_table_name} SET {states_sql};',
        vendor=DBVendor.PG,
        raise_on_error=True
    )

    log(context, f'[{set_phase.__name__}] Phase(s) completed: {", ".join(phases)}')


def reset(context: MigrationContext, db: DBAccess, pool: DataPool) -> None:
    """
    Starts the migration from scratch: clears all phases and removes all chunks.
    """
    states_sql = ', '.join([f'"{phase}" = FALSE' for phase in PHASES])
    db.query(
        caller=reset.__name__,
        sql=f'UPDATE {context.state_logs_table_name} SET {states_sql};',
        vendor=DBVendor.PG,
        raise_on_error=True
    )

    pool.truncate()
    log(context, f'[{reset.__name__}] Migration state is reset')


def drop_state_table(context: MigrationContext, db: DBAccess) -> None:
    """
    Drops state logs temporary table.
    """
    db.query(
        caller=drop_state_table.__name__,
        sql=f'DROP TABLE IF EXISTS {context.state_logs_table_name};',
        vendor=DBVendor.PG
    )

    log(context, f'[{drop_state_table.__name__}] table {context.state_logs_table_name} is dropped...')
