"""
Node Pool - bounded pool of transactional connections to one node

Wraps the asyncio flavour of mysql-connector. Every acquisition is scoped:
the connection goes back to the pool (or is discarded when it broke) on every
exit path, so a failing node never exhausts its pool. Idle connections are
checked before reuse, so sockets left over from before a node restart are
dropped instead of failing the next caller. Driver errors are translated here
into NodeConnectionError / QueryError.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Sequence

from mysql.connector import Error
from mysql.connector.aio import connect as mysql_connect

from clusterdb.db.db_config import normalize_isolation_level
from clusterdb.utils.errors import NodeConnectionError, QueryError

logger = logging.getLogger(__name__)


class NodeConnection:
    """One driver connection plus the transaction state this node tracks for it."""

    def __init__(self, node: str, raw):
        self.node = node
        self.raw = raw
        self.in_transaction = False
        self.broken = False

    async def _run(self, sql: str, params: Optional[Sequence[Any]] = None, fetch: bool = False):
        try:
            cursor = await self.raw.cursor(dictionary=True)
            try:
                await cursor.execute(sql, tuple(params) if params else ())
                if fetch:
                    return await cursor.fetchall()
                return cursor.rowcount
            finally:
                await cursor.close()
        except Error as e:
            if getattr(e, 'errno', None) in (2006, 2013, 2055):
                # server gone away / lost connection
                self.broken = True
                raise NodeConnectionError(self.node, str(e)) from e
            raise QueryError(self.node, str(e)) from e

    async def set_isolation_level(self, level: str):
        level = normalize_isolation_level(level)
        await self._run(f"SET SESSION TRANSACTION ISOLATION LEVEL {level}")

    async def begin(self):
        try:
            await self.raw.start_transaction()
        except Error as e:
            raise QueryError(self.node, str(e)) from e
        self.in_transaction = True

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        return await self._run(sql, params, fetch=True)

    async def query_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        rows = await self.query(sql, params)
        return rows[0] if rows else None

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        return await self._run(sql, params)

    async def commit(self):
        try:
            await self.raw.commit()
        except Error as e:
            raise QueryError(self.node, str(e)) from e
        finally:
            self.in_transaction = False

    async def rollback(self):
        """Roll back if a transaction is open; a failed rollback marks the connection broken."""
        if not self.in_transaction:
            return
        self.in_transaction = False
        try:
            await self.raw.rollback()
        except Error as e:
            self.broken = True
            logger.warning(f"Rollback failed on {self.node}: {e}")

    async def is_alive(self) -> bool:
        try:
            return bool(await self.raw.is_connected())
        except Error:
            return False

    async def close(self):
        try:
            await self.raw.close()
        except Error as e:
            logger.debug(f"Error closing connection to {self.node}: {e}")


class NodePool:
    def __init__(self, name: str, role: str, config: Dict[str, Any], size: int = 10,
                 acquire_timeout: Optional[float] = None, connect: Optional[Callable] = None):
        self.name = name
        self.role = role
        self.config = config
        self.size = size
        self.acquire_timeout = acquire_timeout
        self._connect = connect or mysql_connect
        self._slots = asyncio.Semaphore(size)
        self._idle: List[NodeConnection] = []

    def __repr__(self):
        return f"NodePool({self.name!r}, role={self.role!r}, size={self.size})"

    async def _open(self) -> NodeConnection:
        try:
            raw = await self._connect(**self.config)
        except (Error, OSError) as e:
            raise NodeConnectionError(self.name, f"unreachable: {e}") from e
        return NodeConnection(self.name, raw)

    async def _take_slot(self):
        try:
            async with asyncio.timeout(self.acquire_timeout):
                await self._slots.acquire()
        except TimeoutError as e:
            raise NodeConnectionError(self.name, f"pool exhausted ({self.size} connections in use)") from e

    async def _checkout(self) -> NodeConnection:
        """An idle connection that still answers, or a fresh one"""
        while self._idle:
            conn = self._idle.pop()
            if await conn.is_alive():
                return conn
            logger.info(f"Dropping stale idle connection to {self.name}")
            await conn.close()
        return await self._open()

    async def _discard_idle(self):
        while self._idle:
            await self._idle.pop().close()

    @asynccontextmanager
    async def acquire(self):
        """Borrow a pooled connection; it is returned (or discarded) on every exit path"""
        await self._take_slot()
        conn = None
        interrupted = False
        try:
            conn = await self._checkout()
            yield conn
        except BaseException as e:
            # cancelled mid-statement, the protocol state is unknown
            interrupted = not isinstance(e, Exception)
            raise
        finally:
            if conn is not None:
                await conn.rollback()
                if conn.broken:
                    # the node dropped this socket, so the idle ones are gone too
                    await conn.close()
                    await self._discard_idle()
                elif interrupted:
                    await conn.close()
                else:
                    self._idle.append(conn)
            self._slots.release()

    @asynccontextmanager
    async def transaction(self, isolation_level: Optional[str] = None):
        """
        Acquire, set the session isolation level, begin, and yield the connection.
        Commits on normal exit, rolls back on any exception.
        """
        async with self.acquire() as conn:
            await conn.set_isolation_level(isolation_level)
            await conn.begin()
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    @asynccontextmanager
    async def dedicated(self):
        """An unpooled connection, closed on exit (used for simulations)"""
        conn = await self._open()
        try:
            yield conn
        finally:
            await conn.rollback()
            await conn.close()

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None,
                      isolation_level: Optional[str] = None) -> int:
        """Run one statement in its own transaction and return the affected row count"""
        async with self.transaction(isolation_level) as conn:
            return await conn.execute(sql, params)

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None,
                        isolation_level: Optional[str] = None) -> Optional[Dict[str, Any]]:
        async with self.transaction(isolation_level) as conn:
            return await conn.query_one(sql, params)

    async def ping(self) -> bool:
        """Check the node answers SELECT 1"""
        start = time.perf_counter()
        try:
            async with self.acquire() as conn:
                await conn.query("SELECT 1 AS ok")
        except (NodeConnectionError, QueryError) as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False
        logger.debug(f"{self.name} answered in {round((time.perf_counter() - start) * 1000, 2)}ms")
        return True

    async def close(self):
        await self._discard_idle()
