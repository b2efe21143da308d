"""Database module for the Family Budget API.

The DatabaseManager owns the MongoDB connection lifecycle. It moves through
explicit states:

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> RECONNECTING -> CONNECTED
    any -> DISCONNECTED (shutdown)

The initial connect and every reconnect retry with bounded exponential
backoff. After startup a supervisor task pings the server periodically and
drives the RECONNECTING state when the ping fails; it is started and stopped
by the application lifespan, never by free-floating timers. In-flight
requests are not retried: they fail with the driver error, which the managers
surface as a persistence error.
"""

import asyncio
import enum
import time
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from family_budget.config import settings
from family_budget.managers.logging_manager import get_logger

logger = get_logger()
db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")


class ConnectionState(str, enum.Enum):
    """Lifecycle states of the store connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def compute_backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (0-based): base * 2**attempt, capped at max_delay."""
    return min(base_delay * (2**attempt), max_delay)


class DatabaseManager:
    """MongoDB database manager using Motor (async MongoDB driver)"""

    def __init__(self, client_factory=None):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.state: ConnectionState = ConnectionState.DISCONNECTED
        self._client_factory = client_factory or AsyncIOMotorClient
        self._connection_retries = settings.MONGODB_CONNECT_RETRIES
        self._base_delay = settings.MONGODB_RECONNECT_BASE_DELAY
        self._max_delay = settings.MONGODB_RECONNECT_MAX_DELAY
        self._health_check_interval = settings.MONGODB_HEALTH_CHECK_INTERVAL
        self._supervisor_task: Optional[asyncio.Task] = None

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state != self.state:
            db_logger.info("Connection state %s -> %s", self.state.value, new_state.value)
            self.state = new_state

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _build_connection_string(self) -> str:
        if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
            password = settings.MONGODB_PASSWORD.get_secret_value()
            db_logger.debug("Using authenticated connection to MongoDB")
            return (
                f"mongodb://{settings.MONGODB_USERNAME}:"
                f"{password}@"
                f"{settings.MONGODB_URL.replace('mongodb://', '')}"
            )
        db_logger.debug("Using unauthenticated connection to MongoDB")
        return settings.MONGODB_URL

    async def _open_client(self) -> None:
        """Create a client, select the database and ping it once."""
        if self.client is not None:
            self.client.close()

        self.client = self._client_factory(
            self._build_connection_string(),
            serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
            connectTimeoutMS=settings.MONGODB_CONNECTION_TIMEOUT,
            socketTimeoutMS=settings.MONGODB_SOCKET_TIMEOUT,
        )
        self.database = self.client[settings.MONGODB_DATABASE]

        ping_start = time.time()
        await self.client.admin.command("ping")
        perf_logger.debug("MongoDB ping answered in %.3fs", time.time() - ping_start)

    async def _connect_with_backoff(self, max_attempts: Optional[int]) -> None:
        """Try to connect until success or `max_attempts` failures (None means unbounded)."""
        attempt = 0
        while True:
            attempt_start = time.time()
            try:
                db_logger.info(
                    "Connection attempt %d%s to MongoDB database '%s'",
                    attempt + 1,
                    f"/{max_attempts}" if max_attempts else "",
                    settings.MONGODB_DATABASE,
                )
                await self._open_client()
                self._set_state(ConnectionState.CONNECTED)
                db_logger.info("Successfully connected to MongoDB database: %s", settings.MONGODB_DATABASE)
                return
            except (PyMongoError, ConnectionError, TimeoutError) as e:
                perf_logger.warning("Connection attempt %d failed after %.3fs", attempt + 1, time.time() - attempt_start)
                db_logger.warning("Failed to connect to MongoDB (attempt %d): %s", attempt + 1, e)
                if max_attempts is not None and attempt + 1 >= max_attempts:
                    db_logger.error("All %d connection attempts failed", max_attempts)
                    self._set_state(ConnectionState.DISCONNECTED)
                    raise

            backoff_time = compute_backoff(attempt, self._base_delay, self._max_delay)
            db_logger.info("Waiting %.1fs before retry (bounded exponential backoff)", backoff_time)
            await asyncio.sleep(backoff_time)
            attempt += 1

    async def connect(self):
        """Connect to MongoDB with bounded retry logic."""
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")
        self._set_state(ConnectionState.CONNECTING)
        await self._connect_with_backoff(self._connection_retries)
        perf_logger.info("MongoDB connection established in %.3fs", time.time() - start_time)

    async def reconnect(self):
        """Re-establish a lost connection, retrying until it succeeds or the task is cancelled."""
        self._set_state(ConnectionState.RECONNECTING)
        await self._connect_with_backoff(None)

    async def _supervise(self):
        """Ping periodically and reconnect when the server stops answering."""
        health_logger.info("Connection supervisor started (interval %.1fs)", self._health_check_interval)
        while True:
            await asyncio.sleep(self._health_check_interval)
            if await self.health_check():
                continue
            health_logger.warning("MongoDB unreachable, entering reconnect loop")
            await self.reconnect()

    def start_supervisor(self) -> None:
        """Start the reconnect supervisor; called from application startup."""
        if self._supervisor_task is None or self._supervisor_task.done():
            self._supervisor_task = asyncio.create_task(self._supervise())
            self._supervisor_task.add_done_callback(self._on_supervisor_done)

    def _on_supervisor_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            health_logger.error("Connection supervisor died, reconnects are disabled: %r", error)

    async def stop_supervisor(self) -> None:
        """Cancel the reconnect supervisor; called from application shutdown."""
        task, self._supervisor_task = self._supervisor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            health_logger.info("Connection supervisor stopped")
        except Exception as e:
            health_logger.error("Connection supervisor had failed before shutdown: %s", e)

    async def disconnect(self):
        """Stop supervision and close the client."""
        db_logger.info("Starting MongoDB disconnection process")
        try:
            await self.stop_supervisor()
        finally:
            if self.client is not None:
                self.client.close()
                db_logger.info("Successfully disconnected from MongoDB")
            else:
                db_logger.warning("Disconnect called but no active MongoDB connection found")

            self.client = None
            self.database = None
            self._set_state(ConnectionState.DISCONNECTED)

    async def health_check(self) -> bool:
        """Check database connection health"""
        if self.client is None:
            health_logger.warning("Health check failed: No database client available")
            return False

        try:
            start_time = time.time()
            await self.client.admin.command("ping")
            duration = time.time() - start_time
            if duration > 1.0:
                health_logger.warning("Slow database response detected: %.3fs", duration)
            return True
        except (PyMongoError, ConnectionError, TimeoutError) as e:
            health_logger.error("Database health check failed: %s", e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """Get a collection from the database"""
        if self.database is None:
            db_logger.error("Cannot get collection '%s': Database not connected", collection_name)
            raise RuntimeError("Database not connected")
        return self.database[collection_name]

    async def create_indexes(self):
        """Create database indexes; the unique name index backs duplicate detection."""
        start_time = time.time()
        db_logger.info("Creating indexes for '%s' collection", settings.FAMILIES_COLLECTION)

        families = self.get_collection(settings.FAMILIES_COLLECTION)
        await families.create_index("name", unique=True)
        await self._create_index_if_not_exists(families, "members._id", {})

        perf_logger.info("Database index creation completed in %.3fs", time.time() - start_time)

    async def _create_index_if_not_exists(
        self, collection: AsyncIOMotorCollection, field_spec: Any, options: Dict[str, Any]
    ):
        """Create a secondary index, logging instead of failing startup."""
        try:
            await collection.create_index(field_spec, **options)
            db_logger.debug("Successfully created/ensured index: %s", field_spec)
        except PyMongoError as e:
            db_logger.warning("Could not create/ensure index '%s': %s", field_spec, e)

    # Database operation logging utilities
    def log_query_start(self, collection_name: str, operation: str, query: Optional[Dict] = None) -> float:
        """Log the start of a database query and return start time for performance tracking"""
        safe_query = self._sanitize_query_for_logging(query) if query else {}
        db_logger.debug("Starting %s operation on collection '%s' - Query: %s", operation, collection_name, safe_query)
        return time.time()

    def log_query_success(
        self, collection_name: str, operation: str, start_time: float, result_count: Optional[int] = None
    ):
        """Log successful completion of a database query with performance metrics"""
        duration = time.time() - start_time
        if result_count is not None:
            perf_logger.debug(
                "%s on '%s' completed in %.3fs - %d records", operation, collection_name, duration, result_count
            )
        else:
            perf_logger.debug("%s on '%s' completed in %.3fs", operation, collection_name, duration)

    def log_query_error(
        self, collection_name: str, operation: str, start_time: float, error: Exception, query: Optional[Dict] = None
    ):
        """Log database query errors with context and performance metrics"""
        duration = time.time() - start_time
        safe_query = self._sanitize_query_for_logging(query) if query else {}
        db_logger.error(
            "%s operation failed on collection '%s' after %.3fs - Error: %s, Query: %s",
            operation,
            collection_name,
            duration,
            error,
            safe_query,
        )

    def _sanitize_query_for_logging(self, query: Dict[str, Any]) -> Dict[str, Any]:
        """Sanitize database queries for safe logging by removing sensitive data"""
        if not isinstance(query, dict):
            return {}

        sensitive_fields = {"password", "hashed_password", "token", "secret"}

        sanitized: Dict[str, Any] = {}
        for key, value in query.items():
            if any(sensitive_field in key.lower() for sensitive_field in sensitive_fields):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_query_for_logging(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_query_for_logging(item) if isinstance(item, dict) else item for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized

    def describe(self) -> Dict[str, Any]:
        """Connection summary for health endpoints."""
        return {"state": self.state.value, "database": settings.MONGODB_DATABASE}


# Global database manager instance
db_manager = DatabaseManager()
