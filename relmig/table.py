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
from typing import NamedTuple, Optional


class SourceType(NamedTuple):
    """
    Parsed source column type, e.g. "decimal(10,2) unsigned".
    """
    name: str
    modifiers: tuple[str, ...] = ()
    unsigned: bool = False
    values: tuple[str, ...] = ()


class ColumnDescriptor(NamedTuple):
    name: str
    source_name: str
    source_type: SourceType
    nullable: bool
    default: Optional[str]
    is_auto_increment: bool
    comment: str
    target_type: str
    transform: str
    is_default_generated: bool = False


class IndexDescriptor(NamedTuple):
    """
    Primary key, unique constraint or a plain index.
    kind is one of 'primary', 'unique', 'index'.
    """
    name: str
    kind: str
    columns: tuple[str, ...]
    index_type: str = 'BTREE'


class ForeignKeyDescriptor(NamedTuple):
    name: str
    columns: tuple[str, ...]
    referenced_table: str
    referenced_columns: tuple[str, ...]
    on_update: str = 'NO ACTION'
    on_delete: str = 'NO ACTION'


class TableDescriptor(NamedTuple):
    """
    Source table along with its target counterpart.
    """
    source_name: str
    name: str
    columns: tuple[ColumnDescriptor, ...]
    indexes: tuple[IndexDescriptor, ...] = ()
    foreign_keys: tuple[ForeignKeyDescriptor, ...] = ()
    rows_estimate: int = 0
    avg_row_length: int = 0
    comment: str = ''

    @property
    def primary_key(self) -> Optional[IndexDescriptor]:
        """
        Returns the primary key of current table, if any.
        """
        return next((index for index in self.indexes if index.kind == 'primary'), None)

    def get_column(self, column_name: str) -> Optional[ColumnDescriptor]:
        """
        Returns a column by its target name.
        """
        return next((column for column in self.columns if column.name == column_name), None)


class DDLStatement(NamedTuple):
    """
    A single post-load DDL statement, e.g. an index or a check constraint.
    """
    name: str
    kind: str
    sql: str
