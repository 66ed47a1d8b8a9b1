"""
Pathway Stores Package

Storage adapters behind the pathway orchestrator's collaborator interfaces.

Available Backends:
- http: the clinical records REST API (aiohttp)
- mongo: MongoDB collections (motor)

Every backend builds a StoreSet implementing PatientStore, AppointmentStore,
NotesStore and MDTStore.
"""

from typing import Callable, Dict, Optional

from core.config import ApplicationConfig, get_config
from .base_store import (
    AppointmentStore,
    IdentityProvider,
    MDTStore,
    NotesStore,
    PathwayUpdate,
    PatientStore,
    StaticIdentityProvider,
    StoreResult,
    StoreSet,
)

__all__ = [
    # Ports
    'PatientStore',
    'AppointmentStore',
    'NotesStore',
    'MDTStore',
    'IdentityProvider',
    'StaticIdentityProvider',

    # Values
    'StoreResult',
    'StoreSet',
    'PathwayUpdate',

    # Factory
    'STORE_REGISTRY',
    'get_store_factory',
    'create_stores',
]


async def _create_http_stores(config: ApplicationConfig, **kwargs) -> StoreSet:
    from .http_store import (
        ClinicalApiClient,
        HttpAppointmentStore,
        HttpMDTStore,
        HttpNotesStore,
        HttpPatientStore,
    )

    client = ClinicalApiClient(config.http, session=kwargs.get('session'))
    await client.initialize()
    return StoreSet(
        patients=HttpPatientStore(client),
        appointments=HttpAppointmentStore(client),
        notes=HttpNotesStore(client),
        mdt=HttpMDTStore(client),
        resources=[client]
    )


async def _create_mongo_stores(config: ApplicationConfig, **kwargs) -> StoreSet:
    from core.database import DatabaseManager
    from .mongo_store import MongoAppointmentStore, MongoMDTStore, MongoNotesStore, MongoPatientStore

    db_manager = kwargs.get('db_manager')
    resources = []
    if db_manager is None:
        db_manager = DatabaseManager(config.database)
        await db_manager.initialize()
        resources.append(db_manager)

    appointments = MongoAppointmentStore(db_manager)
    return StoreSet(
        patients=MongoPatientStore(db_manager, appointments, config.pathway),
        appointments=appointments,
        notes=MongoNotesStore(db_manager),
        mdt=MongoMDTStore(db_manager),
        resources=resources
    )


# Store registry for backend selection
STORE_REGISTRY: Dict[str, Callable] = {
    'http': _create_http_stores,
    'mongo': _create_mongo_stores,
}


def get_store_factory(backend: str) -> Callable:
    """
    Get store factory by backend name

    Args:
        backend: Name of the backend ('http', 'mongo')

    Returns:
        Async factory returning a StoreSet

    Raises:
        ValueError: If backend name is not recognized
    """
    backend = backend.lower()

    if backend not in STORE_REGISTRY:
        available = ', '.join(STORE_REGISTRY.keys())
        raise ValueError(f"Unknown store backend '{backend}'. Available backends: {available}")

    return STORE_REGISTRY[backend]


async def create_stores(backend: Optional[str] = None, config: Optional[ApplicationConfig] = None, **kwargs) -> StoreSet:
    """
    Create the store set for a backend

    Args:
        backend: Backend name; defaults to the configured STORE_BACKEND
        config: Application configuration
        **kwargs: Shared clients to reuse (session, db_manager)

    Returns:
        Initialized StoreSet
    """
    config = config or get_config()
    factory = get_store_factory(backend or config.store.backend)
    return await factory(config, **kwargs)
