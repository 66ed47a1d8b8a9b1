"""
Pytest Configuration and Fixtures
"""
import datetime as dt

import pytest

from core.config import PathwayConfig
from domains.pathway.models.records import CurrentUser, Patient
from domains.pathway.services.transition_service import PathwayTransitionService
from stores import StaticIdentityProvider, StoreSet
from tests.fakes import TODAY, InMemoryClinicalStore, store_set


@pytest.fixture
def today() -> dt.date:
    return TODAY


@pytest.fixture
def patient() -> Patient:
    return Patient(
        id="p1",
        upi="URP2024001",
        first_name="John",
        last_name="Citizen",
        age=65,
        care_pathway="OPD Queue",
        status="Active"
    )


@pytest.fixture
def clinician() -> CurrentUser:
    return CurrentUser(id="u1", display_name="Dr Jane Smith", role="urologist")


@pytest.fixture
def store(patient) -> InMemoryClinicalStore:
    return InMemoryClinicalStore([patient])


@pytest.fixture
def stores(store) -> StoreSet:
    return store_set(store)


@pytest.fixture
def pathway_config() -> PathwayConfig:
    return PathwayConfig(
        psa_velocity_threshold=0.75,
        default_follow_up_time="09:00",
        default_follow_up_months=3,
        enrichment_max_attempts=1,
        enrichment_retry_delay_seconds=0.0,
        refresh_views=True,
        view_cache_ttl_seconds=300
    )


@pytest.fixture
def service(stores, clinician, pathway_config) -> PathwayTransitionService:
    return PathwayTransitionService(
        stores,
        StaticIdentityProvider(clinician),
        config=pathway_config,
        clock=lambda: TODAY
    )
