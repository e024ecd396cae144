"""
FormScript Database Emulation

ADO.NET-style data access objects for scripts, backed by sqlite3:

    Dim conn As New SqlConnection("Data Source=shop.db")
    conn.Open()
    Dim cmd As New SqlCommand("SELECT Name FROM Items WHERE Price < @max", conn)
    cmd.Parameters.AddWithValue("@max", 10)
    Dim reader = cmd.ExecuteReader()
    While reader.Read()
        ListBox1.Items.Add(reader.GetString("Name"))
    Wend
    conn.Close()

A connection string with `Data Source=<path>` opens that sqlite file. Any
other connection string maps to an in-memory database that is shared by every
connection using the same string for the lifetime of the process.

All objects here are host objects: the interpreter talks to them only through
get_member / set_member / invoke_member / get_item, with member names matched
case-insensitively.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from .builtins import index_value, to_display, to_number
from .errors import DatabaseError


logger = logging.getLogger("formscript.database")
logger.addHandler(logging.NullHandler())


_memory_databases: Dict[str, sqlite3.Connection] = {}


def data_source(connection_string: str) -> Optional[str]:
    """Extract the Data Source (or Filename) value from a connection string"""
    for part in connection_string.split(';'):
        key, sep, value = part.partition('=')
        if not sep:
            continue
        if key.strip().lower().replace(' ', '') in ('datasource', 'filename'):
            return value.strip()
    return None


def open_database(connection_string: str) -> sqlite3.Connection:
    """Open the sqlite database a connection string refers to"""
    path = data_source(connection_string)
    if path and path != ':memory:':
        try:
            return sqlite3.connect(path)
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot open database '{path}': {e}")

    db = _memory_databases.get(connection_string)
    if db is None:
        db = sqlite3.connect(':memory:')
        _memory_databases[connection_string] = db
        logger.debug("created in-memory database for %r", connection_string)
    return db


def reset_memory_databases():
    """Drop every shared in-memory database"""
    for db in _memory_databases.values():
        db.close()
    _memory_databases.clear()


def _bind_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if value is None or isinstance(value, (int, float, str, bytes)):
        return value
    return to_display(value)


# ============================================================================
# Host object base
# ============================================================================

class HostObject:
    """Base for objects a script can hold in a variable and call into"""

    def get_member(self, name: str) -> Any:
        return None

    def set_member(self, name: str, value: Any):
        logger.debug("%s: ignoring write to unknown member %s", type(self).__name__, name)

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        # Calling a property with an argument indexes into it: Rows(0)
        value = self.get_member(name)
        if args:
            return index_value(value, args[0])
        return value

    def get_item(self, key: Any) -> Any:
        return None


# ============================================================================
# Readers and tables
# ============================================================================

def _lookup_column(row: Dict[str, Any], columns: List[str], key: Any) -> Any:
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        index = int(key)
        if 0 <= index < len(columns):
            return row.get(columns[index])
        return None
    name = to_display(key)
    if name in row:
        return row[name]
    lowered = name.lower()
    for column in columns:
        if column.lower() == lowered:
            return row.get(column)
    return None


class SqlDataReader(HostObject):
    """Forward-only cursor over a query result"""

    def __init__(self, columns: List[str], rows: List[Dict[str, Any]]):
        self.columns = columns
        self.rows = rows
        self._index = -1
        self.current_row: Optional[Dict[str, Any]] = None
        self.closed = False

    async def read(self) -> bool:
        if self.closed:
            return False
        self._index += 1
        if self._index < len(self.rows):
            self.current_row = self.rows[self._index]
            return True
        self.current_row = None
        return False

    def get_value(self, column: Any) -> Any:
        if self.current_row is None:
            return None
        return _lookup_column(self.current_row, self.columns, column)

    def get_string(self, column: Any) -> str:
        return to_display(self.get_value(column))

    def get_int32(self, column: Any) -> int:
        return int(to_number(self.get_value(column)))

    def close(self):
        self.closed = True
        self.current_row = None

    def get_member(self, name: str) -> Any:
        key = name.lower()
        if key == 'hasrows':
            return len(self.rows) > 0
        if key == 'fieldcount':
            return len(self.columns)
        if key == 'isclosed':
            return self.closed
        return None

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        key = name.lower()
        column = args[0] if args else None
        if key == 'read':
            return await self.read()
        if key == 'close':
            self.close()
            return None
        if key == 'getstring':
            return self.get_string(column)
        if key == 'getint32':
            return self.get_int32(column)
        if key in ('getvalue', 'item'):
            return self.get_value(column)
        if key == 'isdbnull':
            return self.get_value(column) is None
        return await super().invoke_member(name, args)

    def get_item(self, key: Any) -> Any:
        return self.get_value(key)


class DataRow(HostObject):
    def __init__(self, values: Dict[str, Any], columns: List[str]):
        self.values = values
        self.columns = columns

    def get_item(self, key: Any) -> Any:
        return _lookup_column(self.values, self.columns, key)

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        if name.lower() == 'item' and args:
            return self.get_item(args[0])
        return await super().invoke_member(name, args)


class DataRowCollection(HostObject):
    """DataTable.Rows: Count plus Rows(i)"""

    def __init__(self, table: "DataTable"):
        self.table = table

    def get_member(self, name: str) -> Any:
        if name.lower() == 'count':
            return len(self.table.rows)
        return None

    def get_item(self, key: Any) -> Any:
        index = int(to_number(key))
        if 0 <= index < len(self.table.rows):
            return DataRow(self.table.rows[index], self.table.columns)
        return None

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        if name.lower() == 'clear':
            self.table.clear()
            return None
        return await super().invoke_member(name, args)


class DataTable(HostObject):
    """In-memory table filled by SqlDataAdapter.Fill"""

    def __init__(self):
        self.columns: List[str] = []
        self.rows: List[Dict[str, Any]] = []

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def add_row(self, values: Dict[str, Any]):
        if not self.columns:
            self.columns = list(values.keys())
        self.rows.append(values)

    def clear(self):
        self.columns = []
        self.rows = []

    def get_member(self, name: str) -> Any:
        key = name.lower()
        if key == 'rows':
            return DataRowCollection(self)
        if key == 'columns':
            return list(self.columns)
        return None

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        if name.lower() == 'clear':
            self.clear()
            return None
        return await super().invoke_member(name, args)


# ============================================================================
# Commands and connections
# ============================================================================

class SqlParameterCollection(HostObject):
    """SqlCommand.Parameters"""

    def __init__(self, command: "SqlCommand"):
        self.command = command

    def get_member(self, name: str) -> Any:
        if name.lower() == 'count':
            return len(self.command.parameters)
        return None

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        key = name.lower()
        if key in ('add', 'addwithvalue'):
            if not args:
                raise DatabaseError("Parameters.Add requires a parameter name")
            self.command.add_parameter(to_display(args[0]), args[1] if len(args) > 1 else None)
            return None
        if key == 'clear':
            self.command.parameters.clear()
            return None
        return await super().invoke_member(name, args)


class SqlCommand(HostObject):
    """SQL text plus @name parameters, executed on a SqlConnection"""

    def __init__(self, command_text: str = '', connection: Optional["SqlConnection"] = None):
        self.command_text = command_text
        self.connection = connection
        self.parameters: Dict[str, Any] = {}

    def add_parameter(self, name: str, value: Any):
        self.parameters[name.lstrip('@:$')] = value

    def _execute(self, operation: str) -> sqlite3.Cursor:
        if self.connection is None:
            raise DatabaseError(f"{operation}: command has no connection")
        db = self.connection.require_open(operation)
        params = {name: _bind_value(value) for name, value in self.parameters.items()}
        logger.debug("%s: %s %r", operation, self.command_text, params)
        try:
            return db.execute(self.command_text, params)
        except sqlite3.Error as e:
            raise DatabaseError(f"{operation} failed: {e}")

    async def execute_reader(self) -> SqlDataReader:
        cursor = self._execute("ExecuteReader")
        columns = [d[0] for d in cursor.description or []]
        rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
        return SqlDataReader(columns, rows)

    async def execute_non_query(self) -> int:
        cursor = self._execute("ExecuteNonQuery")
        self.connection.commit()
        return cursor.rowcount

    async def execute_scalar(self) -> Any:
        cursor = self._execute("ExecuteScalar")
        row = cursor.fetchone()
        self.connection.commit()
        return row[0] if row else None

    def get_member(self, name: str) -> Any:
        key = name.lower()
        if key == 'commandtext':
            return self.command_text
        if key == 'parameters':
            return SqlParameterCollection(self)
        if key == 'connection':
            return self.connection
        return None

    def set_member(self, name: str, value: Any):
        key = name.lower()
        if key == 'commandtext':
            self.command_text = to_display(value)
        elif key == 'connection':
            self.connection = value
        else:
            super().set_member(name, value)

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        key = name.lower()
        if key == 'executereader':
            return await self.execute_reader()
        if key == 'executenonquery':
            return await self.execute_non_query()
        if key == 'executescalar':
            return await self.execute_scalar()
        return await super().invoke_member(name, args)


class SqlConnection(HostObject):
    """A connection string plus Open/Closed state"""

    def __init__(self, connection_string: str = ''):
        self.connection_string = connection_string
        self.state = 'Closed'
        self._db: Optional[sqlite3.Connection] = None

    async def open(self):
        self._db = open_database(self.connection_string)
        self.state = 'Open'

    def close(self):
        if self._db is not None:
            self._db.commit()
            if self._db not in _memory_databases.values():
                self._db.close()
        self._db = None
        self.state = 'Closed'

    def commit(self):
        if self._db is not None:
            self._db.commit()

    def require_open(self, operation: str) -> sqlite3.Connection:
        if self._db is None:
            raise DatabaseError(f"{operation} requires an open connection")
        return self._db

    def create_command(self, command_text: str = '') -> SqlCommand:
        return SqlCommand(command_text, self)

    def get_member(self, name: str) -> Any:
        key = name.lower()
        if key == 'state':
            return self.state
        if key == 'connectionstring':
            return self.connection_string
        return None

    def set_member(self, name: str, value: Any):
        if name.lower() == 'connectionstring':
            self.connection_string = to_display(value)
        else:
            super().set_member(name, value)

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        key = name.lower()
        if key == 'open':
            await self.open()
            return None
        if key == 'close':
            self.close()
            return None
        if key == 'createcommand':
            return self.create_command()
        return await super().invoke_member(name, args)


class SqlDataAdapter(HostObject):
    """Runs a command and copies its rows into a DataTable"""

    def __init__(self, command: Optional[SqlCommand] = None):
        self.command = command

    async def fill(self, table: DataTable) -> int:
        if self.command is None:
            raise DatabaseError("Fill: adapter has no select command")
        if not isinstance(table, DataTable):
            raise DatabaseError("Fill requires a DataTable")
        reader = await self.command.execute_reader()
        count = 0
        while await reader.read():
            table.add_row(dict(reader.current_row))
            count += 1
        reader.close()
        return count

    def get_member(self, name: str) -> Any:
        if name.lower() == 'selectcommand':
            return self.command
        return None

    def set_member(self, name: str, value: Any):
        if name.lower() == 'selectcommand':
            self.command = value
        else:
            super().set_member(name, value)

    async def invoke_member(self, name: str, args: List[Any]) -> Any:
        if name.lower() == 'fill':
            return await self.fill(args[0] if args else None)
        return await super().invoke_member(name, args)


# ============================================================================
# Constructors (New T(...) in scripts)
# ============================================================================

def _new_sql_command(args: List[Any]) -> SqlCommand:
    text = to_display(args[0]) if args else ''
    connection = args[1] if len(args) > 1 else None
    if connection is not None and not isinstance(connection, SqlConnection):
        raise DatabaseError("SqlCommand expects a SqlConnection as its second argument")
    return SqlCommand(text, connection)


CONSTRUCTORS = {
    'sqlconnection': lambda args: SqlConnection(to_display(args[0]) if args else ''),
    'sqlcommand': _new_sql_command,
    'datatable': lambda args: DataTable(),
    'sqldataadapter': lambda args: SqlDataAdapter(args[0] if args else None),
}

# Dim zero value for these type names is Nothing
HANDLE_TYPES = frozenset({'sqlconnection', 'sqlcommand', 'datatable', 'sqldatareader', 'sqldataadapter'})


__all__ = [
    'HostObject',
    'SqlConnection',
    'SqlCommand',
    'SqlParameterCollection',
    'SqlDataReader',
    'DataTable',
    'DataRow',
    'DataRowCollection',
    'SqlDataAdapter',
    'CONSTRUCTORS',
    'HANDLE_TYPES',
    'data_source',
    'open_database',
    'reset_memory_databases',
]
