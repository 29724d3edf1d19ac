from typing import List, Optional, Generic, TypeVar
import aiosqlite
import asyncio
from contextlib import asynccontextmanager
from abc import ABC, abstractmethod

from ..utils.logging import get_logger
from ..utils.exceptions import ConnectionPoolError


logger = get_logger(__name__)

T = TypeVar('T')


class ConnectionPool:
    """Manages a pool of database connections"""
    def __init__(self, db_path: str, max_connections: int = 5):
        self.db_path = db_path
        self.max_connections = max_connections
        self._pool: asyncio.Queue = asyncio.Queue(maxsize=max_connections)
        self._active_connections = 0
        self._lock = asyncio.Lock()

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.db_path)
        await conn.execute('PRAGMA journal_mode=WAL')
        return conn

    async def initialize(self):
        """Open the first connection; others are created on demand"""
        logger.info(f"Initializing connection pool on {self.db_path} (max {self.max_connections} connections)")
        try:
            await self._pool.put(await self._connect())
            self._active_connections += 1
        except Exception as e:
            logger.error(f"Failed to initialize connection pool: {e}")
            raise ConnectionPoolError(f"Connection pool initialization failed: {e}")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection from the pool"""
        connection = None
        try:
            async with self._lock:
                if self._pool.empty() and self._active_connections < self.max_connections:
                    connection = await self._connect()
                    self._active_connections += 1
            if connection is None:
                try:
                    connection = await asyncio.wait_for(self._pool.get(), timeout=5.0)
                except asyncio.TimeoutError:
                    raise ConnectionPoolError("Timeout waiting for database connection")

            yield connection

        finally:
            if connection:
                try:
                    self._pool.put_nowait(connection)
                except asyncio.QueueFull as e:
                    logger.error(f"Error returning connection to pool: {e}")
                    await connection.close()
                    async with self._lock:
                        self._active_connections -= 1

    async def close(self):
        """Close all connections in the pool"""
        while not self._pool.empty():
            conn = await self._pool.get()
            await conn.close()
        self._active_connections = 0


class BaseRepository(ABC, Generic[T]):
    """Abstract base class for repositories sharing a connection pool"""
    def __init__(self, pool: ConnectionPool):
        self.pool = pool
        self.table_name: str = ""  # Must be set by implementing classes

    @abstractmethod
    async def create_table(self) -> None:
        """Create the repository's table"""
        pass

    @abstractmethod
    async def store(self, key: str, item: T) -> None:
        pass

    @abstractmethod
    async def get_items(self, key: str, start: Optional[str] = None, end: Optional[str] = None) -> List[T]:
        """Retrieve items for a key within an optional time range"""
        pass

    async def create_indices(self) -> None:
        """Create indices for the repository's table"""
        pass
