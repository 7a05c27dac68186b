"""
Graph store adapter.

Every call acquires its own session from the driver's connection pool and
releases it on the way out, whatever happened. Driver and engine errors are
translated into the brickshop error taxonomy here so that nothing above this
module ever sees neo4j exception types or server text.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from neo4j import GraphDatabase, Query, unit_of_work
from neo4j.exceptions import (
    AuthError,
    ConnectionAcquisitionTimeoutError,
    ConstraintError,
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
)

from brickshop import config
from brickshop.errors import (
    BrickshopError,
    ConstraintViolation,
    QueryFailed,
    StoreUnavailable,
)

logger = logging.getLogger(__name__)


def translate_error(exc: Exception) -> BrickshopError:
    """Map a driver or engine exception onto the brickshop taxonomy.

    Only failures to reach or log into the store count as unavailability;
    driver misuse (consumed results, closed transactions) is a failed query.
    """
    if isinstance(exc, BrickshopError):
        return exc
    if isinstance(exc, (ServiceUnavailable, SessionExpired, ConnectionAcquisitionTimeoutError)):
        return StoreUnavailable("graph store unavailable")
    if isinstance(exc, AuthError):
        return StoreUnavailable("graph store rejected the credentials")
    if isinstance(exc, ConstraintError):
        return ConstraintViolation("graph constraint violated")
    if isinstance(exc, Neo4jError) and "TimedOut" in (getattr(exc, "code", None) or ""):
        return StoreUnavailable("graph store call timed out")
    return QueryFailed("graph query failed")


class GraphStore:
    """Runs parameterised Cypher against Neo4j and returns plain dict rows."""

    def __init__(
        self,
        uri: str = config.NEO4J_URI,
        user: str = config.NEO4J_USER,
        password: str = config.NEO4J_PASSWORD,
        database: Optional[str] = config.NEO4J_DATABASE,
        timeout: Optional[float] = config.NEO4J_QUERY_TIMEOUT,
        driver=None,
    ):
        self.driver = driver or GraphDatabase.driver(uri, auth=(user, password))
        self.database = database
        self.timeout = timeout

    def __enter__(self) -> "GraphStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.driver.close()

    @contextmanager
    def session(self):
        """Scoped session: released on success, empty result and failure alike."""
        try:
            with self.driver.session(database=self.database) as session:
                yield session
        except BrickshopError:
            raise
        except (Neo4jError, DriverError) as exc:
            logger.debug("graph store error: %s", exc, exc_info=True)
            raise translate_error(exc) from exc

    def execute(
        self,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Run one auto-commit statement and return its records as dicts."""
        timeout = self.timeout if timeout is None else timeout
        with self.session() as s:
            result = s.run(Query(query, timeout=timeout), parameters or {})
            return [record.data() for record in result]

    def read(self, work: Callable, *args, **kwargs):
        """Run ``work(tx, *args)`` inside one managed read transaction."""
        with self.session() as s:
            return s.execute_read(self._unit(work), *args, **kwargs)

    def write(self, work: Callable, *args, **kwargs):
        """Run ``work(tx, *args)`` inside one managed write transaction.

        Anything raised by ``work`` rolls the whole transaction back, so a
        composite write is either fully committed or not visible at all.
        """
        with self.session() as s:
            return s.execute_write(self._unit(work), *args, **kwargs)

    def ping(self) -> bool:
        rows = self.execute("RETURN 1 AS ok")
        return bool(rows) and rows[0].get("ok") == 1

    def _unit(self, work: Callable) -> Callable:
        @unit_of_work(timeout=self.timeout)
        def _work(tx, *args, **kwargs):
            return work(tx, *args, **kwargs)

        return _work


def fetch(tx, query: str, **params) -> List[Dict[str, Any]]:
    """Run a statement inside a transaction function and return dict rows."""
    return tx.run(query, params).data()
