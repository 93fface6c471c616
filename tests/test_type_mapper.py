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
Tests for MySQL to PostgreSQL type mapping.
"""
import pytest

from relmig.errors import TypeMappingError, FatalStructuralError
from relmig.table import SourceType
from relmig.type_mapper import (
    parse_source_type,
    map_type,
    map_column,
    TypeMapping,
    TRANSFORM_NONE,
    TRANSFORM_HEX,
    TRANSFORM_WKB_HEX,
    TRANSFORM_BIT_STRING,
    TRANSFORM_FIXED_POINT,
    TRANSFORM_ZERO_DATE,
)


class TestParseSourceType:
    """Parsing of column types, as shown by SHOW FULL COLUMNS."""

    def test_plain_type(self):
        assert parse_source_type('text') == SourceType('text')

    def test_modifiers(self):
        assert parse_source_type('decimal(10,2)') == SourceType('decimal', modifiers=('10', '2'))

    def test_unsigned(self):
        source_type = parse_source_type('int(10) unsigned')

        assert source_type.name == 'int'
        assert source_type.modifiers == ('10',)
        assert source_type.unsigned

    def test_zerofill_implies_unsigned(self):
        assert parse_source_type('int(5) zerofill').unsigned

    def test_upper_case(self):
        assert parse_source_type('BIGINT UNSIGNED') == SourceType('bigint', unsigned=True)

    def test_enum_literals(self):
        source_type = parse_source_type("enum('small','it''s big','a,b')")

        assert source_type.name == 'enum'
        assert source_type.values == ('small', "it's big", 'a,b')
        assert source_type.modifiers == ()


class TestMapType:
    """Mapping rules of config/data_types_map.json."""

    @pytest.mark.parametrize('type_string, expected', [
        ('tinyint(1)', TypeMapping('smallint', TRANSFORM_NONE)),
        ('int(11)', TypeMapping('integer', TRANSFORM_NONE)),
        ('int(10) unsigned', TypeMapping('bigint', TRANSFORM_NONE)),
        ('bigint(20) unsigned', TypeMapping('numeric(20)', TRANSFORM_NONE)),
        ('decimal(10,2)', TypeMapping('numeric(10,2)', TRANSFORM_FIXED_POINT)),
        ('double', TypeMapping('double precision', TRANSFORM_NONE)),
        ('varchar(255)', TypeMapping('text', TRANSFORM_NONE)),
        ('datetime', TypeMapping('timestamp without time zone', TRANSFORM_ZERO_DATE)),
        ('date', TypeMapping('date', TRANSFORM_ZERO_DATE)),
        ('blob', TypeMapping('bytea', TRANSFORM_HEX)),
        ('varbinary(16)', TypeMapping('bytea', TRANSFORM_HEX)),
        ('geometry', TypeMapping('bytea', TRANSFORM_WKB_HEX)),
        ('bit(3)', TypeMapping('bit varying(3)', TRANSFORM_BIT_STRING)),
        ('json', TypeMapping('json', TRANSFORM_NONE)),
    ])
    def test_known_types(self, data_types_map, type_string, expected):
        assert map_type(parse_source_type(type_string), data_types_map) == expected

    def test_enum_is_sized_by_longest_literal(self, data_types_map):
        mapping = map_type(parse_source_type("enum('a','abcd','ab')"), data_types_map)

        assert mapping == TypeMapping('character varying(4)', TRANSFORM_NONE)

    def test_set_is_sized_by_all_literals(self, data_types_map):
        mapping = map_type(parse_source_type("set('a','bb','ccc')"), data_types_map)

        assert mapping.target_type == 'character varying(8)'

    def test_unknown_type(self, data_types_map):
        assert map_type(SourceType('hyperloglog'), data_types_map) is None

    def test_unknown_transform(self):
        assert map_type(SourceType('int'), {'int': {'type': 'integer', 'transform': 'rot13'}}) is None

    def test_is_deterministic(self, data_types_map):
        source_type = parse_source_type('mediumint(8) unsigned')

        assert map_type(source_type, data_types_map) == map_type(source_type, data_types_map)


class TestMapColumn:
    """Column level mapping."""

    def test_returns_source_type_and_mapping(self, data_types_map):
        source_type, mapping = map_column('price', 'decimal(8,3)', data_types_map)

        assert source_type.modifiers == ('8', '3')
        assert mapping.target_type == 'numeric(8,3)'

    def test_unsupported_type_is_fatal(self, data_types_map):
        with pytest.raises(TypeMappingError) as exc_info:
            map_column('sketch', 'hyperloglog', data_types_map, table_name='events')

        assert isinstance(exc_info.value, FatalStructuralError)
        assert exc_info.value.column_name == 'sketch'
        assert exc_info.value.table_name == 'events'
        assert 'sketch' in str(exc_info.value)
