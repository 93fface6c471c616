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
import os
import sys


cwd = os.getcwd()
sys.path.append(cwd)


from relmig.db_access import DBAccess
from relmig.errors import ConfigurationError, FatalStructuralError
from relmig.fs_ops import (
    read_config,
    read_extra_config,
    create_logs_directory,
    read_data_types_map,
    read_index_types_map,
    generate_error,
)
from relmig.boot_processor import boot, get_introduction_message
from relmig.migration_context import MigrationContext
from relmig.migration_runner import run_migration
from relmig.report_generator import generate_report

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# The run has finished, but some chunks or constraints need the operator.
EXIT_INCOMPLETE = 2


def main() -> int:
    """
    Runs the migration, as configured in "./config" directory.
    Returns the process exit code, non-zero if the migration is not complete.
    """
    print(get_introduction_message())
    base_dir = os.getenv('aux_dir', cwd)
    config = read_config(base_dir)
    config = read_extra_config(config, base_dir)

    try:
        context = MigrationContext(config, read_data_types_map(config), read_index_types_map(config))
    except ConfigurationError as e:
        print(f'\t--[{main.__name__}] {e}')
        return EXIT_FAILURE

    create_logs_directory(context)
    db = DBAccess(context)

    try:
        boot(context, db)
        report = run_migration(context, db)
    except (ConfigurationError, FatalStructuralError) as e:
        generate_error(context, f'[{main.__name__}] {type(e).__name__}: {e}')
        return EXIT_FAILURE
    finally:
        db.close_connection_pools()

    generate_report(context, report)
    return EXIT_SUCCESS if report.is_complete else EXIT_INCOMPLETE


if __name__ == '__main__':
    sys.exit(main())
