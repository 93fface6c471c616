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
import re
from typing import NamedTuple, Optional

from relmig.errors import TypeMappingError
from relmig.table import SourceType

TRANSFORM_NONE = 'none'
TRANSFORM_HEX = 'hex'
TRANSFORM_WKB_HEX = 'wkb_hex'
TRANSFORM_BIT_STRING = 'bit_string'
TRANSFORM_FIXED_POINT = 'fixed_point'
TRANSFORM_ZERO_DATE = 'zero_date'

TRANSFORMS = (
    TRANSFORM_NONE,
    TRANSFORM_HEX,
    TRANSFORM_WKB_HEX,
    TRANSFORM_BIT_STRING,
    TRANSFORM_FIXED_POINT,
    TRANSFORM_ZERO_DATE,
)

# Columns, that are loaded as hex and decoded once all the data is in place.
BINARY_TRANSFORMS = (TRANSFORM_HEX, TRANSFORM_WKB_HEX)

_QUOTED_LITERAL = re.compile(r"'((?:[^']|'')*)'")


class TypeMapping(NamedTuple):
    target_type: str
    transform: str


def parse_source_type(type_string: str) -> SourceType:
    """
    Parses a MySQL column type, as shown by "SHOW FULL COLUMNS".
    Examples: "int(11) unsigned", "decimal(10,2)", "enum('a','b')".
    """
    type_string = type_string.strip()
    opening_position, closing_position = type_string.find('('), type_string.rfind(')')

    if opening_position != -1 and closing_position > opening_position:
        name = type_string[:opening_position].strip().lower()
        arguments = type_string[opening_position + 1:closing_position]
        attributes = type_string[closing_position + 1:].lower().split()
    else:
        parts = type_string.lower().split()
        name, arguments, attributes = (parts[0] if parts else ''), '', parts[1:]

    # ZEROFILL implies UNSIGNED.
    unsigned = 'unsigned' in attributes or 'zerofill' in attributes

    if name in ('enum', 'set'):
        values = tuple(literal.replace("''", "'") for literal in _QUOTED_LITERAL.findall(arguments))
        return SourceType(name=name, unsigned=unsigned, values=values)

    modifiers = tuple(modifier.strip() for modifier in arguments.split(',') if modifier.strip())
    return SourceType(name=name, modifiers=modifiers, unsigned=unsigned)


def map_type(source_type: SourceType, data_types_map: dict) -> Optional[TypeMapping]:
    """
    Converts MySQL data type to corresponding PostgreSQL data type.
    This conversion performs in accordance to mapping rules in './config/data_types_map.json'.
    Returns None for types, the map knows nothing about.
    """
    rule = data_types_map.get(source_type.name)

    if rule is None:
        return None

    transform = rule.get('transform', TRANSFORM_NONE)

    if transform not in TRANSFORMS:
        return None

    if source_type.name == 'enum':
        # Enough room for the longest literal.
        length = max([len(value) for value in source_type.values] or [1])
        return TypeMapping(f'{rule["type"]}({max(length, 1)})', transform)

    if source_type.name == 'set':
        # Enough room for all literals, separated by commas.
        length = sum(len(value) for value in source_type.values) + len(source_type.values) - 1
        return TypeMapping(f'{rule["type"]}({max(length, 1)})', transform)

    target_type = rule.get('increased_size') if source_type.unsigned else None
    target_type = target_type or rule['type']

    if rule.get('keep_modifiers') and source_type.modifiers:
        target_type = f'{target_type}({",".join(source_type.modifiers)})'

    return TypeMapping(target_type, transform)


def map_column(
    column_name: str,
    type_string: str,
    data_types_map: dict,
    table_name: Optional[str] = None
) -> tuple[SourceType, TypeMapping]:
    """
    Parses and maps a type of given column.
    Raises TypeMappingError if the type cannot be mapped.
    """
    source_type = parse_source_type(type_string)
    type_mapping = map_type(source_type, data_types_map)

    if type_mapping is None:
        raise TypeMappingError(f'Unsupported type "{type_string}"', column_name=column_name, table_name=table_name)

    return source_type, type_mapping
