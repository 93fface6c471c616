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
Tests for running tasks concurrently.
"""
import pytest

from relmig.concurrency_manager import run_concurrently
from relmig.errors import TransientTransferError


class TestRunConcurrently:
    """Parallel execution of parameter sets."""

    def test_results(self, context):
        assert sorted(run_concurrently(context, pow, [[2, 3], [3, 2], [2, 2]], 2)) == [4, 8, 9]

    def test_no_tasks(self, context):
        assert run_concurrently(context, pow, []) == []

    def test_failures_are_logged(self, context):
        def divide(value):
            if value == 0:
                raise TransientTransferError('division failed')

            return 10 // value

        assert sorted(run_concurrently(context, divide, [[1], [0], [5]], 3)) == [2, 10]

    def test_fail_fast(self, context):
        def fail(value):
            raise TransientTransferError(f'failed {value}')

        with pytest.raises(TransientTransferError):
            run_concurrently(context, fail, [[1], [2]], 2, fail_fast=True)
