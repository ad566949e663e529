import asyncio
import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lambollama.sale.database.models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class DatabaseManager:
    """
    Async SQLAlchemy database manager for the sale ledger.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, echo: bool = False):
        """
        Initialize the database manager

        Args:
            database_url: SQLAlchemy async URL, e.g. sqlite+aiosqlite:///./sale.db
            echo: Log every SQL statement
        """
        self.database_url = database_url
        self.echo = echo
        self.engine = None
        self._session_factory = None
        # Writes are globally serialized, like transactions in a block
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: dict, echo: bool = False) -> "DatabaseManager":
        """Build a manager for the database_url of a load_sale_config() result."""
        return cls(config["database_url"], echo=echo)

    @property
    def is_memory_db(self) -> bool:
        return ":memory:" in self.database_url or self.database_url.endswith("://")

    async def initialize(self):
        """
        Create the engine and all ledger tables.

        Returns:
            bool: True if initialization was successful
        """
        if self.engine is not None:
            return True

        engine_kwargs = {"echo": self.echo}
        if self.is_memory_db:
            # Every connection to :memory: is a new database, share one
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        self.engine = create_async_engine(self.database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Sale ledger database initialized at {self.database_url}")
        return True

    def async_session(self) -> AsyncSession:
        """Create a new session, for use as an async context manager."""
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager.initialize() has not been called")
        return self._session_factory()

    @asynccontextmanager
    async def transaction(self):
        """Session with an open transaction, committed on exit and rolled back on error"""
        async with self._write_lock:
            async with self.async_session() as session:
                async with session.begin():
                    yield session

    async def dispose(self):
        """Dispose of database resources"""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
            logger.info("Sale ledger database disposed")
