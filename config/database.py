"""Store configuration and factory for the grounding service."""

import os
import logging
from typing import Optional
from pydantic import BaseModel, Field

from indexer.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Database configuration."""
    sqlite_path: str = Field(default="data/grounding.db", description="SQLite database path")
    ensure_index: bool = Field(default=True, description="Create the index on startup")

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Create configuration from environment variables."""
        return cls(
            sqlite_path=os.getenv('SQLITE_PATH', 'data/grounding.db'),
            ensure_index=os.getenv('ENSURE_INDEX_ON_STARTUP', 'true').lower() != 'false'
        )


class DatabaseFactory:
    """Factory owning the process-wide store."""

    _instance: Optional['DatabaseFactory'] = None
    _store: Optional[SQLiteStore] = None
    _config: Optional[DatabaseConfig] = None

    def __new__(cls) -> 'DatabaseFactory':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(self, config: Optional[DatabaseConfig] = None):
        """Open the store and optionally make sure the index exists."""
        if config is None:
            config = DatabaseConfig.from_env()

        self._config = config

        logger.info("Initializing SQLite store")
        self._store = SQLiteStore(config.sqlite_path)
        await self._store.initialize()

        if config.ensure_index:
            await self._store.ensure_index()

        logger.info(f"Store initialized: {config.sqlite_path}")

    async def close(self):
        """Close database connections."""
        if self._store:
            await self._store.close()
            self._store = None
            logger.info("Store closed")

    def get_store(self) -> SQLiteStore:
        """Get the current store."""
        if self._store is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._store

    def get_config(self) -> DatabaseConfig:
        """Get the current database configuration."""
        if self._config is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._config

    def is_initialized(self) -> bool:
        return self._store is not None


# Global database factory instance
db_factory = DatabaseFactory()


def get_store() -> SQLiteStore:
    """Get the store instance."""
    return db_factory.get_store()


async def initialize_database(config: Optional[DatabaseConfig] = None):
    """Initialize database with configuration."""
    await db_factory.initialize(config)


async def close_database():
    """Close database connections."""
    await db_factory.close()
