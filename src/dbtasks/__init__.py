"""
Async task-style data access for PostgreSQL.

Commands are built from SQL text and typed parameters, executed against a
connection the call owns from open to close, and read back through small
row-mapping functions:

    cmd = to_cmd('select id, name from users where id = @id', to_param(1, '@id'))
    user = await get_one_row(cmd, factory.get_connection(), to_attrdict)

The `Database` facade does the same with a fresh connection per call.
"""
__version__ = '0.1.0'

from dbtasks.command import Command, CommandBehavior, CommandType, add_params
from dbtasks.command import to_cmd, to_cmd_value
from dbtasks.connection import ConnectionFactory, ConnectionState, DbConnection
from dbtasks.connection import PgConnection, PgConnectionFactory
from dbtasks.cursor import Row, RowCursor
from dbtasks.database import Database, connect
from dbtasks.exceptions import ConnectionFailure, CursorStateError, DatabaseError
from dbtasks.exceptions import DbConnectionError, IntegrityError, OperationalError
from dbtasks.exceptions import ProgrammingError, TypeConversionError
from dbtasks.exceptions import UniqueViolation
from dbtasks.executor import execute_non_query, execute_reader, execute_scalar
from dbtasks.executor import get_one_row, get_rows
from dbtasks.mappers import from_db, get_bool, get_date, get_decimal, get_float
from dbtasks.mappers import get_guid, get_int, get_long, get_string, to_attrdict
from dbtasks.mappers import to_bool, to_date, to_date_nullable, to_decimal
from dbtasks.mappers import to_float, to_guid, to_guid_nullable, to_int, to_long
from dbtasks.mappers import to_str, to_val, to_xml
from dbtasks.options import DatabaseOptions
from dbtasks.parameters import Parameter, ParameterDirection, add_param, param
from dbtasks.parameters import to_param
from dbtasks.types import DBNull, TypeMapper, TypeTag, is_null, register_type
from dbtasks.types import to_type_tag

__all__ = [
    # Commands and parameters
    'Command',
    'CommandBehavior',
    'CommandType',
    'to_cmd',
    'to_cmd_value',
    'add_params',
    'Parameter',
    'ParameterDirection',
    'to_param',
    'param',
    'add_param',
    # Types
    'TypeTag',
    'TypeMapper',
    'DBNull',
    'is_null',
    'to_type_tag',
    'register_type',
    # Connections
    'ConnectionState',
    'ConnectionFactory',
    'DbConnection',
    'PgConnection',
    'PgConnectionFactory',
    'DatabaseOptions',
    # Execution
    'execute_non_query',
    'execute_scalar',
    'execute_reader',
    'get_one_row',
    'get_rows',
    'Database',
    'connect',
    'Row',
    'RowCursor',
    # Mapping
    'from_db',
    'to_attrdict',
    'to_bool',
    'to_date',
    'to_date_nullable',
    'to_decimal',
    'to_float',
    'to_guid',
    'to_guid_nullable',
    'to_int',
    'to_long',
    'to_str',
    'to_val',
    'to_xml',
    'get_bool',
    'get_date',
    'get_decimal',
    'get_float',
    'get_guid',
    'get_int',
    'get_long',
    'get_string',
    # Exceptions
    'DatabaseError',
    'ConnectionFailure',
    'CursorStateError',
    'TypeConversionError',
    'DbConnectionError',
    'IntegrityError',
    'OperationalError',
    'ProgrammingError',
    'UniqueViolation',
]
