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
Tests for phase sequencing, resumption and the summary report.

Phase implementations are patched out, the state and the data pool tables are kept in memory.
"""
import os
from unittest.mock import patch

import pytest

import main
from relmig.constraints_processor import ConstraintsSummary, ConstraintFailure
from relmig.data_pipe_manager import PipeSummary, ChunkFailure
from relmig.errors import FatalStructuralError, TransientTransferError
from relmig.migration_runner import run_migration
from relmig.migration_state_manager import PHASES, MigrationPhaseState
from relmig.report_generator import MigrationReport, format_elapsed_time, generate_report
from tests.conftest import make_table

COMPLETE_PIPE = PipeSummary(done=1, failed=0, pending=0, in_progress=0, retried=0, rows_loaded=10,
                            failures=(), stopped=False)

FAILED_PIPE = PipeSummary(done=0, failed=1, pending=0, in_progress=0, retried=2, rows_loaded=0,
                          failures=(ChunkFailure('tags', 1, 0, 'PermanentDataError', 'bad value'),), stopped=False)

COMPLETE_CONSTRAINTS = ConstraintsSummary(applied=3, failed=(), deferred=(), skipped=())

FAILED_CONSTRAINTS = ConstraintsSummary(
    applied=2,
    failed=(ConstraintFailure('tags', 'tags_pkey', 'PermanentDataError', 'duplicate key'),),
    deferred=(),
    skipped=()
)


class Phases:
    """Patches all the phase implementations of the runner."""

    def __init__(self, fake_db, pipe_summary=COMPLETE_PIPE, constraints_summary=COMPLETE_CONSTRAINTS,
                 decode_error=None):
        self.fake_db = fake_db
        self.tables = [make_table('tags')]
        self.pipe_summary = pipe_summary
        self.constraints_summary = constraints_summary
        self.decode_error = decode_error

    def _decode(self, context, db, tables):
        if self.decode_error:
            raise self.decode_error

        self.fake_db.phases['binary_data_decoded'] = True
        return 0

    def __enter__(self):
        self.patchers = {
            'load_structure': patch('relmig.migration_runner.load_structure', return_value=self.tables),
            'run': patch('relmig.data_pipe_manager.run', return_value=self.pipe_summary),
            'decode': patch('relmig.migration_runner.decode', side_effect=self._decode),
            'process_constraints': patch('relmig.migration_runner.process_constraints',
                                         return_value=self.constraints_summary),
            'reclaim_storage': patch('relmig.migration_runner.reclaim_storage', return_value=len(self.tables)),
        }

        self.mocks = {name: patcher.start() for name, patcher in self.patchers.items()}
        return self

    def __exit__(self, *exc_info):
        for patcher in self.patchers.values():
            patcher.stop()


class TestRunMigration:
    """Phase sequencing."""

    def test_complete_run(self, context, fake_db):
        with Phases(fake_db) as phases:
            report = run_migration(context, fake_db)

        assert report.is_complete
        assert report.pipe_summary is COMPLETE_PIPE
        assert report.constraints_summary is COMPLETE_CONSTRAINTS
        assert report.vacuumed_tables == 1
        phases.mocks['reclaim_storage'].assert_called_once_with(context, fake_db, phases.tables)
        phases.mocks['load_structure'].assert_called_once_with(context, fake_db, False)
        assert not fake_db.pool_table_exists
        assert not fake_db.state_table_exists

    def test_transient_tables_are_kept_on_request(self, make_context, fake_db):
        with Phases(fake_db):
            report = run_migration(make_context(remove_transient_tables=False), fake_db)

        assert report.is_complete
        assert fake_db.pool_table_exists
        assert fake_db.state_table_exists

    def test_incomplete_data_postpones_later_phases(self, context, fake_db):
        with Phases(fake_db, pipe_summary=FAILED_PIPE) as phases:
            report = run_migration(context, fake_db)

        assert not report.is_complete
        assert report.phase == MigrationPhaseState(structure_loaded=True)
        phases.mocks['decode'].assert_not_called()
        phases.mocks['process_constraints'].assert_not_called()
        assert fake_db.state_table_exists

    def test_failed_constraint_leaves_phase_unset(self, context, fake_db):
        with Phases(fake_db, constraints_summary=FAILED_CONSTRAINTS) as phases:
            report = run_migration(context, fake_db)

        assert report.phase == MigrationPhaseState(True, True, True, False)
        phases.mocks['reclaim_storage'].assert_not_called()
        assert fake_db.state_table_exists

    def test_failed_decoding_postpones_constraints(self, context, fake_db):
        with Phases(fake_db, decode_error=TransientTransferError('connection lost')) as phases:
            report = run_migration(context, fake_db)

        assert report.phase == MigrationPhaseState(True, True, False, False)
        phases.mocks['process_constraints'].assert_not_called()

    def test_resumed_run_skips_completed_phases(self, context, fake_db):
        fake_db.phases = {phase: False for phase in PHASES}
        fake_db.phases.update(structure_loaded=True, data_loaded=True)

        with Phases(fake_db) as phases:
            report = run_migration(context, fake_db)

        assert report.is_complete
        assert report.pipe_summary is None
        phases.mocks['load_structure'].assert_called_once_with(context, fake_db, True)
        phases.mocks['run'].assert_not_called()
        phases.mocks['decode'].assert_called_once()

    def test_resumed_run_applies_constraints_only(self, context, fake_db):
        fake_db.phases = {phase: True for phase in PHASES}
        fake_db.phases['constraints_applied'] = False

        with Phases(fake_db) as phases:
            run_migration(context, fake_db)

        phases.mocks['decode'].assert_not_called()
        phases.mocks['process_constraints'].assert_called_once()

    def test_reset_starts_from_scratch(self, make_context, fake_db):
        fake_db.phases = {phase: True for phase in PHASES}

        with Phases(fake_db) as phases:
            run_migration(make_context(reset_state=True), fake_db)

        phases.mocks['load_structure'].assert_called_once()
        assert phases.mocks['load_structure'].call_args[0][2] is False
        phases.mocks['run'].assert_called_once()


class TestReport:
    """Summary report."""

    @pytest.mark.parametrize('elapsed_seconds, expected', [
        (0, '00:00:00'),
        (59.9, '00:00:59'),
        (3725, '01:02:05'),
        (90061, '25:01:01'),
    ])
    def test_format_elapsed_time(self, elapsed_seconds, expected):
        assert format_elapsed_time(elapsed_seconds) == expected

    def test_report_lists_failures(self, context):
        report = MigrationReport(
            phase=MigrationPhaseState(True, False, False, False),
            pipe_summary=FAILED_PIPE,
            constraints_summary=FAILED_CONSTRAINTS,
            decoded_columns=0,
            elapsed_seconds=61
        )

        generate_report(context, report)

        with open(os.path.join(context.logs_dir_path, 'all.log')) as file:
            output = file.read()

        assert 'Migration is interrupted.' in output
        assert 'data_loaded: no' in output
        assert 'Failed chunk #0 of "tags": bad value' in output
        assert 'Failed constraint "tags_pkey" of "tags": duplicate key' in output
        assert 'Total time: 00:01:01' in output


class TestExitCode:
    """Process exit codes of the command line entry point."""

    @pytest.fixture
    def run_main(self, config, data_types_map, index_types_map, fake_db):
        def _run_main(**run_migration_kwargs):
            with patch('main.read_config', return_value=config), \
                    patch('main.read_extra_config', side_effect=lambda config, base_dir: config), \
                    patch('main.read_data_types_map', return_value=data_types_map), \
                    patch('main.read_index_types_map', return_value=index_types_map), \
                    patch('main.DBAccess', return_value=fake_db), \
                    patch('main.boot'), \
                    patch('main.run_migration', **run_migration_kwargs):
                return main.main()

        return _run_main

    def test_complete_run(self, run_main):
        phase = MigrationPhaseState(True, True, True, True)
        report = MigrationReport(phase, COMPLETE_PIPE, COMPLETE_CONSTRAINTS, 0, 1)

        assert run_main(return_value=report) == main.EXIT_SUCCESS

    def test_incomplete_run(self, run_main):
        report = MigrationReport(MigrationPhaseState(structure_loaded=True), FAILED_PIPE, None, 0, 1)

        assert run_main(return_value=report) == main.EXIT_INCOMPLETE == 2

    def test_structural_failure(self, run_main):
        assert run_main(side_effect=FatalStructuralError('cannot create table')) == main.EXIT_FAILURE
