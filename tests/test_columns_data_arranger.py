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
Tests for source-side column conversion and the COPY text format.
"""
from decimal import Decimal

import pytest

from relmig.columns_data_arranger import arrange_columns_data, escape_copy_value, get_row_transformer
from relmig.table import SourceType
from relmig.type_mapper import (
    TRANSFORM_HEX,
    TRANSFORM_WKB_HEX,
    TRANSFORM_BIT_STRING,
    TRANSFORM_FIXED_POINT,
    TRANSFORM_ZERO_DATE,
)
from tests.conftest import make_column


class TestArrangeColumnsData:
    """SELECT list, sent to the source database."""

    @pytest.mark.parametrize('column, expected', [
        (make_column('photo', 'bytea', SourceType('blob'), TRANSFORM_HEX), 'HEX(`photo`) AS `photo`'),
        (make_column('area', 'bytea', SourceType('polygon'), TRANSFORM_WKB_HEX),
         'HEX(ST_AsWKB(`area`)) AS `area`'),
        (make_column('flags', 'bit varying(3)', SourceType('bit', ('3',)), TRANSFORM_BIT_STRING),
         'BIN(`flags`) AS `flags`'),
        (make_column('born', 'date', SourceType('date'), TRANSFORM_ZERO_DATE),
         "IF(CAST(`born` AS CHAR) LIKE '0000-00-00%', '-INFINITY', CAST(`born` AS CHAR)) AS `born`"),
        (make_column('at', 'time without time zone', SourceType('time')), 'CAST(`at` AS CHAR) AS `at`'),
        (make_column('id'), '`id` AS `id`'),
    ])
    def test_column(self, column, expected):
        assert arrange_columns_data((column,)) == expected

    def test_columns_keep_their_order(self):
        columns = (make_column('b'), make_column('a'))

        assert arrange_columns_data(columns) == '`b` AS `b`,`a` AS `a`'

    def test_renamed_column_is_selected_by_source_name(self):
        column = make_column('id')._replace(name='client_id', source_name='id')

        assert arrange_columns_data((column,)) == '`id` AS `id`'


class TestEscapeCopyValue:
    """Escaping of COPY text format special characters."""

    def test_special_characters(self):
        assert escape_copy_value('a\\b\tc\nd\re') == 'a\\\\b\\tc\\nd\\re'

    def test_plain_text(self):
        assert escape_copy_value('plain text') == 'plain text'


class TestRowTransformer:
    """Conversion of fetched rows into COPY lines."""

    def test_null_and_text(self):
        transform_row = get_row_transformer((make_column('id'), make_column('name', 'text')), 'utf8')

        assert transform_row((1, None)) == '1\t\\N'
        assert transform_row((2, 'line\nbreak')) == '2\tline\\nbreak'

    def test_bit_string_is_padded(self):
        column = make_column('flags', 'bit varying(5)', SourceType('bit', ('5',)), TRANSFORM_BIT_STRING)

        assert get_row_transformer((column,), 'utf8')(('101',)) == '00101'

    def test_fixed_point_keeps_precision(self):
        column = make_column('price', 'numeric(30,10)', SourceType('decimal', ('30', '10')), TRANSFORM_FIXED_POINT)

        assert get_row_transformer((column,), 'utf8')((Decimal('1E-10'),)) == '0.0000000001'

    def test_bytes_are_decoded(self):
        transform_row = get_row_transformer((make_column('name', 'text'),), 'utf8')

        assert transform_row((bytearray('café'.encode()),)) == 'café'

    def test_undecodable_bytes(self):
        transform_row = get_row_transformer((make_column('name', 'text'),), 'utf8')

        with pytest.raises(UnicodeDecodeError):
            transform_row((b'\xff',))
