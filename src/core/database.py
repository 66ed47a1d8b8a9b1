"""
MongoDB connection and repositories for the pathway collections
"""

import logging
from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection

from .config import get_database_config, DatabaseConfig

logger = logging.getLogger(__name__)

IndexSpec = Tuple[List[Tuple[str, int]], Dict[str, Any]]


def pathway_indexes(config: DatabaseConfig) -> Dict[str, List[IndexSpec]]:
    """Indexes per collection, keyed by the configured collection name"""
    return {
        config.patients_collection: [
            ([("upi", 1)], {"sparse": True}),
            ([("care_pathway", 1)], {}),
        ],
        # Per-patient listings and per-clinician slot lookups
        config.appointments_collection: [
            ([("patient_id", 1), ("date", 1)], {}),
            ([("clinician_id", 1), ("date", 1), ("time", 1)], {}),
        ],
        config.notes_collection: [([("patient_id", 1), ("created_at", -1)], {})],
        config.discharge_summaries_collection: [([("patient_id", 1)], {})],
        config.mdt_meetings_collection: [([("patient_id", 1), ("meeting_date", -1)], {})],
    }


class DatabaseManager:
    """Owns the motor client the Mongo stores share"""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or get_database_config()
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None

    async def initialize(self) -> None:
        if self._database is not None:
            return

        logger.info(f"Connecting to MongoDB database {self.config.name}")
        self._client = AsyncIOMotorClient(
            self.config.uri,
            maxPoolSize=self.config.max_pool_size,
            minPoolSize=self.config.min_pool_size,
            maxIdleTimeMS=self.config.max_idle_time_ms,
            serverSelectionTimeoutMS=self.config.server_selection_timeout_ms
        )
        try:
            await self._client.admin.command('ping')
            database = self._client[self.config.name]
            for collection_name, specs in pathway_indexes(self.config).items():
                for keys, options in specs:
                    await database[collection_name].create_index(keys, **options)
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            self._client.close()
            raise

        self._database = database
        logger.info("Database ready")

    async def cleanup(self) -> None:
        if self._client:
            self._client.close()
            self._database = None
            logger.info("Database connections closed")

    def get_collection(self, name: str) -> AsyncIOMotorCollection:
        if self._database is None:
            raise RuntimeError("Database manager not initialized. Call initialize() first.")
        return self._database[name]


class BaseRepository:
    """Common reads and writes over one collection"""

    def __init__(self, db_manager: DatabaseManager, collection_name: str):
        self.db_manager = db_manager
        self.collection_name = collection_name

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self.db_manager.get_collection(self.collection_name)

    async def find_one(self, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one(filter_dict)

    async def find_many(self, filter_dict: Dict[str, Any], sort: Optional[List[tuple]] = None) -> List[Dict[str, Any]]:
        cursor = self.collection.find(filter_dict)
        if sort:
            cursor = cursor.sort(sort)
        return await cursor.to_list(length=None)

    async def insert_one(self, document: Dict[str, Any]) -> str:
        """Insert a document stamped with created/updated times; returns its id"""
        now = datetime.utcnow()
        document.setdefault("created_at", now)
        document.setdefault("updated_at", now)
        try:
            result = await self.collection.insert_one(document)
        except Exception as e:
            logger.error(f"Insert into {self.collection_name} failed: {e}")
            raise
        return str(result.inserted_id)
