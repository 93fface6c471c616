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
from decimal import Decimal
from typing import Any, Callable

from relmig.table import ColumnDescriptor
from relmig.type_mapper import (
    TRANSFORM_HEX,
    TRANSFORM_WKB_HEX,
    TRANSFORM_BIT_STRING,
    TRANSFORM_FIXED_POINT,
    TRANSFORM_ZERO_DATE,
)

# NULL marker of PostgreSQL COPY text format.
COPY_NULL = '\\N'

_TEMPORAL_TYPES = ('time', 'year')


def arrange_columns_data(columns: tuple[ColumnDescriptor, ...]) -> str:
    """
    Arranges columns data before loading.
    Notice, the "inline" columns encoding conversion cannot be implemented,
    since MySQL's UTF-8 implementation isn't the same as PostgreSQL's one.
    """
    select_fields_list = []

    for column in columns:
        col_field = column.source_name

        if column.transform == TRANSFORM_WKB_HEX:
            # Apply HEX(ST_AsWKB(...)) due to the issue, described at https://bugs.mysql.com/bug.php?id=69798
            select_fields_list.append(f'HEX(ST_AsWKB(`{col_field}`)) AS `{col_field}`')
        elif column.transform == TRANSFORM_HEX:
            select_fields_list.append(f'HEX(`{col_field}`) AS `{col_field}`')
        elif column.transform == TRANSFORM_BIT_STRING:
            select_fields_list.append(f'BIN(`{col_field}`) AS `{col_field}`')
        elif column.transform == TRANSFORM_ZERO_DATE:
            select_fields_list.append(f"IF(CAST(`{col_field}` AS CHAR) LIKE '0000-00-00%',"
                                      f" '-INFINITY', CAST(`{col_field}` AS CHAR)) AS `{col_field}`")
        elif column.source_type.name in _TEMPORAL_TYPES:
            select_fields_list.append(f'CAST(`{col_field}` AS CHAR) AS `{col_field}`')
        else:
            select_fields_list.append(f'`{col_field}` AS `{col_field}`')

    return ','.join(select_fields_list)


def escape_copy_value(value: str) -> str:
    """
    Escapes given value according to PostgreSQL COPY text format.
    """
    return (value
            .replace('\\', '\\\\')
            .replace('\t', '\\t')
            .replace('\n', '\\n')
            .replace('\r', '\\r'))


def _get_value_formatter(column: ColumnDescriptor, encoding: str) -> Callable[[Any], str]:
    """
    Returns a function, that turns a single fetched value of given column into its text representation.
    """
    if column.transform == TRANSFORM_BIT_STRING:
        width = int(column.source_type.modifiers[0]) if column.source_type.modifiers else 1
        return lambda value: str(value).zfill(width)

    if column.transform == TRANSFORM_FIXED_POINT:
        return lambda value: format(value, 'f') if isinstance(value, Decimal) else str(value)

    def _format(value: Any) -> str:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode(encoding)

        return str(value)

    return _format


def get_row_transformer(columns: tuple[ColumnDescriptor, ...], encoding: str) -> Callable[[tuple], str]:
    """
    Returns a function, that turns a fetched row into a line of PostgreSQL COPY text format.
    Raises UnicodeDecodeError for text, that cannot be decoded with given encoding.
    """
    formatters = [_get_value_formatter(column, encoding) for column in columns]

    def transform_row(row: tuple) -> str:
        return '\t'.join([
            COPY_NULL if value is None else escape_copy_value(formatter(value))
            for formatter, value in zip(formatters, row)
        ])

    return transform_row
