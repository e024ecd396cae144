"""
Tests for the sqlite-backed database objects.
"""

import asyncio
import os
import sys

import pytest

# Add grandparent directory to path for imports (to find formscript_runtime package)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from formscript_runtime.database import (
    DataTable, SqlCommand, SqlConnection, SqlDataAdapter,
    data_source, open_database, reset_memory_databases,
)
from formscript_runtime.errors import DatabaseError, E_DATABASE_ERROR


SETUP = (
    'Dim conn As New SqlConnection("shop")\n'
    'conn.Open()\n'
    'Dim cmd As New SqlCommand("CREATE TABLE Items (Name TEXT, Price INTEGER)", conn)\n'
    'cmd.ExecuteNonQuery()\n'
    'cmd.CommandText = "INSERT INTO Items VALUES (@name, @price)"\n'
    'cmd.Parameters.AddWithValue("@name", "Pen")\n'
    'cmd.Parameters.AddWithValue("@price", 3)\n'
    'cmd.ExecuteNonQuery()\n'
    'cmd.Parameters.Clear()\n'
    'cmd.Parameters.AddWithValue("@name", "Book")\n'
    'cmd.Parameters.AddWithValue("@price", 12)\n'
    'cmd.ExecuteNonQuery()\n'
)


class TestConnectionStrings:
    """Connection string parsing and database sharing"""

    def test_data_source(self):
        assert data_source('Data Source=shop.db;Version=3') == 'shop.db'
        assert data_source('Filename=a.sqlite') == 'a.sqlite'
        assert data_source('Server=.;Database=x') is None

    def test_memory_databases_are_shared(self):
        assert open_database('Server=x') is open_database('Server=x')
        assert open_database('Server=x') is not open_database('Server=y')

    def test_reset_memory_databases(self):
        first = open_database('Server=x')
        reset_memory_databases()
        assert open_database('Server=x') is not first

    def test_file_database(self, tmp_path):
        path = tmp_path / 'shop.db'

        async def run():
            conn = SqlConnection(f"Data Source={path}")
            await conn.open()
            await SqlCommand("CREATE TABLE t (v INTEGER)", conn).execute_non_query()
            await SqlCommand("INSERT INTO t VALUES (7)", conn).execute_non_query()
            conn.close()
            assert conn.state == 'Closed'

            again = SqlConnection(f"Data Source={path}")
            await again.open()
            value = await SqlCommand("SELECT v FROM t", again).execute_scalar()
            again.close()
            return value

        assert asyncio.run(run()) == 7


class TestCommands:
    """SqlCommand from Python"""

    def test_command_requires_open_connection(self):
        command = SqlCommand("SELECT 1", SqlConnection("Server=x"))
        with pytest.raises(DatabaseError) as info:
            asyncio.run(command.execute_scalar())
        assert info.value.code == E_DATABASE_ERROR
        assert 'requires an open connection' in info.value.message

    def test_sql_errors_become_database_errors(self):
        async def run():
            conn = SqlConnection("Server=x")
            await conn.open()
            await SqlCommand("SELECT * FROM missing", conn).execute_reader()

        with pytest.raises(DatabaseError):
            asyncio.run(run())

    def test_reader(self):
        async def run():
            conn = SqlConnection("Server=x")
            await conn.open()
            await SqlCommand("CREATE TABLE t (Name TEXT, Qty INTEGER)", conn).execute_non_query()
            await SqlCommand("INSERT INTO t VALUES ('a', 1), ('b', 2)", conn).execute_non_query()
            reader = await SqlCommand("SELECT Name, Qty FROM t ORDER BY Qty", conn).execute_reader()
            rows = []
            while await reader.read():
                rows.append((reader.get_string('name'), reader.get_int32(1)))
            return reader, rows

        reader, rows = asyncio.run(run())
        assert rows == [('a', 1), ('b', 2)]
        assert reader.get_member('HasRows') is True
        assert reader.get_member('FieldCount') == 2

    def test_adapter_fill(self):
        async def run():
            conn = SqlConnection("Server=x")
            await conn.open()
            await SqlCommand("CREATE TABLE t (v INTEGER)", conn).execute_non_query()
            await SqlCommand("INSERT INTO t VALUES (1), (2), (3)", conn).execute_non_query()
            table = DataTable()
            count = await SqlDataAdapter(SqlCommand("SELECT v FROM t", conn)).fill(table)
            return table, count

        table, count = asyncio.run(run())
        assert count == 3
        assert table.columns == ['v']
        assert table.get_member('Rows').get_item(2).get_item('v') == 3

    def test_fill_requires_table(self):
        with pytest.raises(DatabaseError):
            asyncio.run(SqlDataAdapter(SqlCommand("SELECT 1")).fill(None))


class TestScripts:
    """Database objects driven from FormScript"""

    def test_insert_and_read_back(self, execute):
        ctx = execute(SETUP + (
            'cmd.CommandText = "SELECT Name FROM Items WHERE Price < @max ORDER BY Name"\n'
            'cmd.Parameters.Clear()\n'
            'cmd.Parameters.AddWithValue("@max", 10)\n'
            'Dim reader = cmd.ExecuteReader()\n'
            'While reader.Read()\n'
            '    ListBox1.Items.Add(reader.GetString("Name"))\n'
            'Wend\n'
            'reader.Close()\n'
            'conn.Close()\n'
        ))
        assert ctx.get_property('ListBox1', 'items') == ['Pen']
        assert ctx.variables['conn'].state == 'Closed'

    def test_memory_database_survives_close(self, execute):
        ctx = execute(SETUP + (
            'conn.Close()\n'
            'Dim again As New SqlConnection("shop")\n'
            'again.Open()\n'
            'Dim count As New SqlCommand("SELECT COUNT(*) FROM Items", again)\n'
            'total = count.ExecuteScalar()\n'
        ))
        assert ctx.variables['total'] == 2

    def test_data_table_rows(self, execute):
        ctx = execute(SETUP + (
            'Dim table As New DataTable()\n'
            'Dim adapter As New SqlDataAdapter(New SqlCommand("SELECT Name, Price FROM Items ORDER BY Price", conn))\n'
            'adapter.Fill(table)\n'
            'n = table.Rows.Count\n'
            'first = table.Rows(0)("Name")\n'
        ))
        assert ctx.variables['n'] == 2
        assert ctx.variables['first'] == 'Pen'

    def test_dim_handle_without_new_is_nothing(self, execute):
        ctx = execute('Dim conn As SqlConnection')
        assert ctx.variables['conn'] is None
