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
import time

import relmig.data_pipe_manager as DataPipeManager
from relmig.db_access import DBAccess
from relmig.errors import MigrationError
from relmig.fs_ops import log, generate_error
from relmig.migration_context import MigrationContext
from relmig.schema_processor import create_schema
from relmig.structure_loader import load_structure
from relmig.data_pool_manager import DataPool
from relmig.binary_data_decoder import decode
from relmig.constraints_processor import process_constraints
from relmig.vacuum_processor import reclaim_storage
from relmig.report_generator import MigrationReport
from relmig.migration_state_manager import (
    ensure_state_table,
    get_phase,
    set_phase,
    reset,
    drop_state_table,
    STRUCTURE_LOADED,
    DATA_LOADED,
    CONSTRAINTS_APPLIED,
)


def run_migration(context: MigrationContext, db: DBAccess) -> MigrationReport:
    """
    Runs all the migration phases in order.
    Every phase, already completed by a previous run, is skipped.
    Raises FatalStructuralError if the target structure cannot be created.
    """
    time_begin = time.time()
    pool = DataPool(context, db)
    create_schema(context, db)
    ensure_state_table(context, db)
    pool.create_data_pool_table()

    if context.reset_state:
        reset(context, db, pool)

    phase = get_phase(context, db)
    tables = load_structure(context, db, phase.structure_loaded)

    if not phase.structure_loaded:
        set_phase(context, db, STRUCTURE_LOADED)

    pipe_summary = None

    if not phase.data_loaded:
        pool.build_pools(tables)
        pool.reset_in_progress_chunks()
        pipe_summary = DataPipeManager.run(context, db, pool, tables, context.max_parallel_chunk_transfers)

        if pipe_summary.is_complete:
            set_phase(context, db, DATA_LOADED)
        else:
            log(context, f'[{run_migration.__name__}] Not all the data is loaded, subsequent phases are postponed')

    phase = get_phase(context, db)
    decoded_columns = 0

    if phase.data_loaded and not phase.binary_data_decoded:
        try:
            decoded_columns = decode(context, db, tables)
        except MigrationError as e:
            generate_error(context, f'[{run_migration.__name__}] Binary data is not decoded: {e}')

    phase = get_phase(context, db)
    constraints_summary = None
    vacuumed_tables = 0

    if phase.binary_data_decoded and not phase.constraints_applied:
        constraints_summary = process_constraints(context, db, tables)

        if constraints_summary.is_complete:
            set_phase(context, db, CONSTRAINTS_APPLIED)
            vacuumed_tables = reclaim_storage(context, db, tables)

    phase = get_phase(context, db)

    if phase.is_complete and context.remove_transient_tables:
        pool.drop_data_pool_table()
        drop_state_table(context, db)

    return MigrationReport(
        phase=phase,
        pipe_summary=pipe_summary,
        constraints_summary=constraints_summary,
        decoded_columns=decoded_columns,
        elapsed_seconds=time.time() - time_begin,
        vacuumed_tables=vacuumed_tables
    )
