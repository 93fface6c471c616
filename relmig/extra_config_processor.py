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
from typing import cast

from relmig.migration_context import MigrationContext


def get_column_name(
    context: MigrationContext,
    original_table_name: str,
    current_column_name: str,
    should_get_original: bool
) -> str:
    """
    Retrieves appropriate column name.
    """
    for table_dict in context.extra_config.get('tables', []):
        if table_dict['name']['original'] == original_table_name and 'columns' in table_dict:
            for column_dict in table_dict['columns']:
                column_name = column_dict['new'] if should_get_original else column_dict['original']

                if column_name == current_column_name:
                    return cast(str, column_dict['original'] if should_get_original else column_dict['new'])

    return current_column_name


def get_table_name(
    context: MigrationContext,
    current_table_name: str,
    should_get_original: bool
) -> str:
    """
    Retrieves appropriate table name.
    """
    for table_dict in context.extra_config.get('tables', []):
        table_name = table_dict['name']['new'] if should_get_original else table_dict['name']['original']

        if table_name == current_table_name:
            return cast(str, table_dict['name']['original'] if should_get_original else table_dict['name']['new'])

    return current_table_name


def parse_foreign_keys(context: MigrationContext, original_table_name: str) -> list[dict[str, str]]:
    """
    Parses the extra_config foreign_keys attributes.
    Returned rows look like rows of the source foreign keys metadata query.
    """
    return [
        {attribute.upper(): row[attribute] for attribute in row}
        for row in context.extra_config.get('foreign_keys', [])
        if row['table_name'] == original_table_name
    ]
