"""Unit tests for the redis-py backed command executor."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from redis_metrics_exporter.core.errors import CommandError, ScrapeConnectionError
from redis_metrics_exporter.core.executor import RedisConnectionExecutor
from redis_metrics_exporter.core.replies import ErrorReply, Text

CONNECT = "redis.asyncio.connection.Connection.connect"


class TestConnect:
    """Test opening connections."""

    @pytest.mark.asyncio
    async def test_database_from_url(self):
        with patch(CONNECT, new_callable=AsyncMock):
            executor = await RedisConnectionExecutor.connect("redis://localhost:6379/3")

        assert executor.db == 3

    @pytest.mark.asyncio
    async def test_default_database(self):
        with patch(CONNECT, new_callable=AsyncMock):
            executor = await RedisConnectionExecutor.connect("redis://localhost:6379")

        assert executor.db == 0

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        with patch(CONNECT, new_callable=AsyncMock, side_effect=RedisConnectionError("refused")):
            with pytest.raises(ScrapeConnectionError, match="dial redis"):
                await RedisConnectionExecutor.connect("redis://localhost:6379")


class TestExecute:
    """Test command execution on a connection."""

    @pytest.mark.asyncio
    async def test_reply(self):
        connection = MagicMock(db=0)
        connection.send_command = AsyncMock()
        connection.read_response = AsyncMock(return_value=b"PONG")

        reply = await RedisConnectionExecutor(connection).execute("PING")

        assert reply == Text(b"PONG")
        connection.send_command.assert_awaited_once_with("PING")

    @pytest.mark.asyncio
    async def test_error_reply(self):
        connection = MagicMock(db=0)
        connection.send_command = AsyncMock()
        connection.read_response = AsyncMock(side_effect=ResponseError("ERR unknown command"))

        reply = await RedisConnectionExecutor(connection).execute("NOPE")

        assert reply == ErrorReply("ERR unknown command")

    @pytest.mark.asyncio
    async def test_io_failure(self):
        connection = MagicMock(db=0)
        connection.send_command = AsyncMock(side_effect=RedisConnectionError("reset"))

        with pytest.raises(CommandError, match="INFO"):
            await RedisConnectionExecutor(connection).execute("INFO")
