import asyncio
import json
from typing import Any, Dict, List, Optional
import aiosqlite

from .database import BaseRepository, ConnectionPool
from ..core.gateway_route import GatewayRoute
from ..models.offering import DataField
from ..utils.exceptions import DatabaseError, GatewayError
from ..utils.helpers import timestamp_now
from ..utils.logging import get_logger

logger = get_logger(__name__)

DATE_FIELD_NAME = "date"
VALUES_FIELD_NAME = "values"
START_FIELD = DataField(name="startTime", rdf_uri="http://schema.big-iot.org/mobility/startTime")
END_FIELD = DataField(name="endTime", rdf_uri="http://schema.big-iot.org/mobility/endTime")
DATE_FIELD = DataField(name=DATE_FIELD_NAME, rdf_uri="http://schema.big-iot.org/common/measurementTime")

Record = Dict[str, Any]


class HistoryRepository(BaseRepository[Record]):
    """Sampled route records, one JSON payload per row, ordered by insertion"""
    def __init__(self, pool: ConnectionPool):
        super().__init__(pool)
        self.table_name = "route_history"

    async def create_table(self) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(f'''
                    CREATE TABLE IF NOT EXISTS {self.table_name} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        route_uri TEXT NOT NULL,
                        recorded_at TEXT NOT NULL,
                        payload TEXT NOT NULL
                    )
                ''')
                await conn.commit()
            await self.create_indices()
        except aiosqlite.Error as e:
            logger.error(f"Failed to create table {self.table_name}: {e}")
            raise DatabaseError(f"Failed to create table: {e}")

    async def create_indices(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f'CREATE INDEX IF NOT EXISTS idx_{self.table_name}_route ON {self.table_name} (route_uri, recorded_at)'
            )
            await conn.commit()

    async def store(self, key: str, item: Record) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    f'INSERT INTO {self.table_name} (route_uri, recorded_at, payload) VALUES (?, ?, ?)',
                    (key, item[DATE_FIELD_NAME], json.dumps(item))
                )
                await conn.commit()
        except aiosqlite.Error as e:
            logger.error(f"Failed to store record for {key}: {e}")
            raise DatabaseError(f"Failed to store record: {e}")

    async def get_items(self, key: str, start: Optional[str] = None, end: Optional[str] = None) -> List[Record]:
        query = f'SELECT payload FROM {self.table_name} WHERE route_uri = ?'
        params: List[Any] = [key]
        # Timestamps are ISO strings, so they compare lexicographically
        if start:
            query += ' AND recorded_at >= ?'
            params.append(start)
        if end:
            query += ' AND recorded_at <= ?'
            params.append(end)
        query += ' ORDER BY id'
        try:
            async with self.pool.acquire() as conn:
                async with conn.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
                    return [json.loads(row[0]) for row in rows]
        except aiosqlite.Error as e:
            logger.error(f"Failed to read records for {key}: {e}")
            raise DatabaseError(f"Failed to read records: {e}")

    async def trim(self, key: str, limit: int) -> None:
        """Keep only the newest `limit` records of a key"""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    f'''
                    DELETE FROM {self.table_name}
                    WHERE route_uri = ? AND id NOT IN (
                        SELECT id FROM {self.table_name} WHERE route_uri = ? ORDER BY id DESC LIMIT ?
                    )
                    ''',
                    (key, key, limit)
                )
                await conn.commit()
        except aiosqlite.Error as e:
            logger.error(f"Failed to trim records for {key}: {e}")
            raise DatabaseError(f"Failed to trim records: {e}")


class HistoryStore:
    """
    Samples a read route every `period` seconds and serves the stored
    records instead of live data. The route gains startTime/endTime inputs
    and a date output.
    """
    def __init__(self, route: GatewayRoute, repository: HistoryRepository, period: float = 60.0, limit: int = 100):
        self.route = route
        self.repository = repository
        self.period = period
        self.limit = limit
        self._task: Optional[asyncio.Task] = None
        self._running = False

        route.converted_input_schema.extend([START_FIELD, END_FIELD])
        route.converted_output_schema.append(DATE_FIELD)

    async def start(self) -> None:
        await self.repository.create_table()
        self._running = True
        self._task = asyncio.create_task(self._poll())
        logger.info(f"History started for /{self.route.uri} (every {self.period}s, {self.limit} records)")

    async def _poll(self) -> None:
        while self._running:
            try:
                await self.record_once()
            except (GatewayError, DatabaseError) as e:
                logger.error(f"History sampling failed for /{self.route.uri}: {e}")
            await asyncio.sleep(self.period)

    async def record_once(self) -> Record:
        records = await self.route.access()
        if len(records) == 1:
            entry = dict(records[0])
        else:
            entry = {VALUES_FIELD_NAME: records}
        entry[DATE_FIELD_NAME] = timestamp_now()
        await self.repository.store(self.route.uri, entry)
        await self.repository.trim(self.route.uri, self.limit)
        return entry

    async def read(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Record]:
        return await self.repository.get_items(self.route.uri, start, end)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
