"""
Tests for the executor's result shapes and connection lifecycle.

Every test checks that the connection it handed over was closed exactly
once, whichever way the call ended.
"""
import asyncio
import logging

import pytest
from dbtasks.command import CommandBehavior, to_cmd
from dbtasks.connection import ConnectionState
from dbtasks.exceptions import CursorStateError
from dbtasks.executor import execute_non_query, execute_reader, execute_scalar
from dbtasks.executor import get_one_row, get_rows, scoped_connection
from dbtasks.mappers import from_db
from dbtasks.parameters import param, to_param
from dbtasks.types import TypeTag

USERS = ['id', 'name']
ROWS = [(1, 'Alice'), (2, 'Bob'), (3, 'Charlie')]


def name_of(row):
    return from_db(row, 'name', str)


class TestSingleRowLookup:
    """Look up one user by id and map its name."""

    sql = 'SELECT * FROM users WHERE id = @id'

    @pytest.mark.asyncio
    async def test_found(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=[(1, 'Alice')])
        cmd = to_cmd(self.sql, param('@id', TypeTag.Int32, 1))

        assert await get_one_row(cmd, cn, name_of) == 'Alice'
        assert cn.cursors[0].executed == [('SELECT * FROM users WHERE id = %(id)s', {'id': 1})]
        assert cn.open_calls == 1
        assert cn.close_calls == 1
        assert cn.cursor_closed

    @pytest.mark.asyncio
    async def test_not_found(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=[])
        cmd = to_cmd(self.sql, param('@id', TypeTag.Int32, 99))

        assert await get_one_row(cmd, cn, name_of) is None
        assert cn.close_calls == 1

    @pytest.mark.asyncio
    async def test_reads_only_first_row(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)
        calls = []

        def mapper(row):
            calls.append(row['id'])
            return row['id']

        assert await get_one_row(to_cmd('SELECT * FROM users'), cn, mapper) == 1
        assert calls == [1]
        assert cn.cursors[0].fetched == 1


class TestOpenFailure:
    """A non-query on a connection that cannot be opened."""

    cmd = to_cmd('UPDATE users SET name = @name WHERE id = @id',
                 to_param('Dan', '@name'), to_param(4, '@id'))

    @pytest.mark.asyncio
    async def test_open_error_propagates(self, create_fake_connection):
        cn = create_fake_connection(open_error=OSError('connection refused'))

        with pytest.raises(OSError, match='connection refused'):
            await execute_non_query(self.cmd, cn)
        assert cn.close_calls == 1
        assert cn.cursors == []

    @pytest.mark.asyncio
    async def test_close_error_does_not_mask_open_error(self, create_fake_connection, caplog):
        cn = create_fake_connection(open_error=OSError('connection refused'),
                                    close_error=RuntimeError('close failed'))

        with caplog.at_level(logging.WARNING, logger='dbtasks.executor'), \
                pytest.raises(OSError, match='connection refused'):
            await execute_non_query(self.cmd, cn)
        assert cn.close_calls == 1
        assert 'close failed' in caplog.text


class TestReaderCallbackFailure:
    """A reader callback that fails on the second row."""

    @pytest.mark.asyncio
    async def test_error_stops_reading(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)
        seen = []

        def action(row):
            seen.append(row['name'])
            if len(seen) == 2:
                raise ValueError('bad row')

        with pytest.raises(ValueError, match='bad row'):
            await execute_reader(to_cmd('SELECT * FROM users'), cn, action)
        assert seen == ['Alice', 'Bob']
        assert cn.cursors[0].fetched == 2
        assert cn.close_calls == 1
        assert cn.cursor_closed

    @pytest.mark.asyncio
    async def test_async_callback_error(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)
        seen = []

        async def action(row):
            seen.append(row['id'])
            if row['id'] == 2:
                raise ValueError('bad row')

        with pytest.raises(ValueError):
            await execute_reader(to_cmd('SELECT * FROM users'), cn, action)
        assert seen == [1, 2]
        assert cn.close_calls == 1


class TestExecuteReader:

    @pytest.mark.asyncio
    async def test_visits_every_row(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)
        seen = []
        count = await execute_reader(to_cmd('SELECT * FROM users'), cn,
                                     lambda row: seen.append(row['name']))
        assert count == 3
        assert seen == ['Alice', 'Bob', 'Charlie']
        assert cn.close_calls == 1

    @pytest.mark.asyncio
    async def test_rows_invalid_after_callback(self, create_fake_connection):
        """Test that a Row kept past its callback cannot be read"""
        cn = create_fake_connection(columns=USERS, rows=ROWS[:1])
        kept = []
        await execute_reader(to_cmd('SELECT * FROM users'), cn, kept.append)
        with pytest.raises(CursorStateError):
            kept[0]['name']

    @pytest.mark.asyncio
    async def test_single_row_behavior(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)
        seen = []
        count = await execute_reader(to_cmd('SELECT * FROM users'), cn,
                                     lambda row: seen.append(row['id']),
                                     behavior=CommandBehavior.SINGLE_ROW)
        assert count == 1
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_command_behavior_used_by_default(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)
        cmd = to_cmd('SELECT * FROM users', behavior=CommandBehavior.SCHEMA_ONLY)
        seen = []
        assert await execute_reader(cmd, cn, seen.append) == 0
        assert seen == []
        assert cn.cursors[0].fetched == 0

    @pytest.mark.asyncio
    async def test_statement_without_rows(self, create_fake_connection):
        cn = create_fake_connection(columns=None, rowcount=1)
        seen = []
        assert await execute_reader(to_cmd('DELETE FROM users'), cn, seen.append) == 0
        assert seen == []


class TestGetRows:

    @pytest.mark.asyncio
    async def test_order_and_length(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)
        names = await get_rows(to_cmd('SELECT * FROM users'), cn, name_of)
        assert names == ['Alice', 'Bob', 'Charlie']
        assert cn.close_calls == 1

    @pytest.mark.asyncio
    async def test_async_mapper(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)

        async def mapper(row):
            await asyncio.sleep(0)
            return row['id'] * 10

        assert await get_rows(to_cmd('SELECT * FROM users'), cn, mapper) == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_empty(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=[])
        assert await get_rows(to_cmd('SELECT * FROM users'), cn, name_of) == []
        assert cn.close_calls == 1

    @pytest.mark.asyncio
    async def test_mapper_failure_propagates(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS)

        def mapper(row):
            if row['id'] == 3:
                raise KeyError('id')
            return row['id']

        with pytest.raises(KeyError):
            await get_rows(to_cmd('SELECT * FROM users'), cn, mapper)
        assert cn.close_calls == 1


class TestScalarAndNonQuery:

    @pytest.mark.asyncio
    async def test_scalar(self, create_fake_connection):
        cn = create_fake_connection(columns=['count'], rows=[(3,), (4,)])
        assert await execute_scalar(to_cmd('SELECT count(*) FROM users'), cn) == 3
        assert cn.close_calls == 1

    @pytest.mark.asyncio
    async def test_scalar_no_rows(self, create_fake_connection):
        cn = create_fake_connection(columns=['id'], rows=[])
        assert await execute_scalar(to_cmd('SELECT id FROM users WHERE false'), cn) is None

    @pytest.mark.asyncio
    async def test_scalar_null(self, create_fake_connection):
        cn = create_fake_connection(columns=['email'], rows=[(None,)])
        assert await execute_scalar(to_cmd('SELECT email FROM users'), cn) is None

    @pytest.mark.asyncio
    async def test_scalar_without_result_set(self, create_fake_connection):
        cn = create_fake_connection(columns=None, rowcount=1)
        assert await execute_scalar(to_cmd('DELETE FROM users'), cn) is None

    @pytest.mark.asyncio
    async def test_non_query_rowcount(self, create_fake_connection):
        cn = create_fake_connection(columns=None, rowcount=2)
        cmd = to_cmd('DELETE FROM users WHERE id > @id', to_param(1, '@id'))
        assert await execute_non_query(cmd, cn) == 2
        assert cn.close_calls == 1
        assert cn.cursor_closed

    @pytest.mark.asyncio
    async def test_non_query_without_rowcount(self, create_fake_connection):
        cn = create_fake_connection(columns=None)
        assert await execute_non_query(to_cmd('CREATE TABLE t (a int)'), cn) == -1


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_execute_error(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, execute_error=RuntimeError('syntax error'))
        with pytest.raises(RuntimeError, match='syntax error'):
            await get_rows(to_cmd('SELEC 1'), cn, name_of)
        assert cn.close_calls == 1
        assert cn.cursor_closed

    @pytest.mark.asyncio
    async def test_fetch_error(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS, fetch_error=OSError('reset'))
        with pytest.raises(OSError):
            await get_rows(to_cmd('SELECT * FROM users'), cn, name_of)
        assert cn.close_calls == 1

    @pytest.mark.asyncio
    async def test_already_open_connection_not_reopened(self, create_fake_connection):
        cn = create_fake_connection(columns=['n'], rows=[(1,)])
        await cn.open()
        assert await execute_scalar(to_cmd('SELECT 1'), cn) == 1
        assert cn.open_calls == 1
        assert cn.close_calls == 1
        assert cn.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_error_suppressed_on_success(self, create_fake_connection, caplog):
        """Test that a failing close is logged and the result still returned"""
        cn = create_fake_connection(columns=USERS, rows=ROWS, close_error=OSError('close failed'))
        with caplog.at_level(logging.WARNING, logger='dbtasks.executor'):
            names = await get_rows(to_cmd('SELECT * FROM users'), cn, name_of)
        assert names == ['Alice', 'Bob', 'Charlie']
        assert 'close failed' in caplog.text

    @pytest.mark.asyncio
    async def test_cursor_close_error_suppressed(self, create_fake_connection):
        cn = create_fake_connection(columns=['n'], rows=[(1,)], close_error=None)
        cn.cursor_kw['close_error'] = OSError('cursor close failed')
        assert await execute_scalar(to_cmd('SELECT 1'), cn) == 1
        assert cn.close_calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_while_opening(self, create_fake_connection):
        cn = create_fake_connection(open_delay=10, columns=USERS, rows=ROWS)
        task = asyncio.create_task(get_rows(to_cmd('SELECT * FROM users'), cn, name_of))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert cn.close_calls == 1
        assert cn.cursors == []

    @pytest.mark.asyncio
    async def test_cancelled_while_reading(self, create_fake_connection):
        cn = create_fake_connection(columns=USERS, rows=ROWS, fetch_delay=10)
        task = asyncio.create_task(get_rows(to_cmd('SELECT * FROM users'), cn, name_of))
        while not cn.cursors or not cn.cursors[0].executed:
            await asyncio.sleep(0)
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert cn.close_calls == 1
        assert cn.cursor_closed
        assert cn.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_scoped_connection(self, create_fake_connection):
        cn = create_fake_connection()
        async with scoped_connection(cn) as opened:
            assert opened is cn
            assert cn.state is ConnectionState.OPEN
        assert cn.state is ConnectionState.CLOSED
        assert cn.close_calls == 1
