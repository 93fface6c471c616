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
import math
from typing import NamedTuple, Optional

from relmig.migration_context import MigrationContext
from relmig.migration_state_manager import MigrationPhaseState
from relmig.data_pipe_manager import PipeSummary
from relmig.constraints_processor import ConstraintsSummary
from relmig.fs_ops import log


class MigrationReport(NamedTuple):
    phase: MigrationPhaseState
    pipe_summary: Optional[PipeSummary]
    constraints_summary: Optional[ConstraintsSummary]
    decoded_columns: int
    elapsed_seconds: float
    vacuumed_tables: int = 0

    @property
    def is_complete(self) -> bool:
        return self.phase.is_complete


def format_elapsed_time(elapsed_seconds: float) -> str:
    """
    Formats given number of seconds as hh:mm:ss.
    """
    seconds = math.floor(elapsed_seconds % 60)
    elapsed_minutes = elapsed_seconds / 60
    minutes = math.floor(elapsed_minutes % 60)
    hours = math.floor(elapsed_minutes / 60)
    return f'{hours:02d}:{minutes:02d}:{seconds:02d}'


def generate_report(context: MigrationContext, report: MigrationReport) -> None:
    """
    Generates a summary report.
    """
    log_title = generate_report.__name__
    last_message = ('Migration is accomplished.'
                    if report.is_complete
                    else 'Migration is interrupted. Fix the errors, listed in errors-only.log, and run it again.')

    output = f'[{log_title}] {last_message}'

    for phase, is_completed in report.phase._asdict().items():
        output += f'\n\t--[{log_title}] {phase}: {"yes" if is_completed else "no"}'

    if report.pipe_summary:
        output += (f'\n\t--[{log_title}] Chunks done: {report.pipe_summary.done},'
                   f' failed: {report.pipe_summary.failed}, pending: {report.pipe_summary.pending},'
                   f' rows loaded: {report.pipe_summary.rows_loaded}')

        for chunk_failure in report.pipe_summary.failures:
            output += (f'\n\t--[{log_title}] Failed chunk #{chunk_failure.chunk_number}'
                       f' of "{chunk_failure.table_name}": {chunk_failure.message}')

    if report.decoded_columns:
        output += f'\n\t--[{log_title}] Binary columns decoded: {report.decoded_columns}'

    if report.constraints_summary:
        output += (f'\n\t--[{log_title}] Constraints applied: {report.constraints_summary.applied},'
                   f' failed: {len(report.constraints_summary.failed)}')

        for constraint_failure in report.constraints_summary.failed:
            output += (f'\n\t--[{log_title}] Failed constraint "{constraint_failure.constraint_name}"'
                       f' of "{constraint_failure.table_name}": {constraint_failure.message}')

    if report.vacuumed_tables:
        output += f'\n\t--[{log_title}] Tables vacuumed: {report.vacuumed_tables}'

    output += (f'\n\t--[{log_title}] Total time: {format_elapsed_time(report.elapsed_seconds)}'
               f'\n\t--[{log_title}] (hours:minutes:seconds)')

    log(context, output)
