"""Shared test fixtures."""
import itertools

import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leadscore.database import Base
from leadscore.scoring.base import LeadRecord
from leadscore.scoring.orchestrator import ScoringOrchestrator
from leadscore.services.lead_store import SqlLeadStore
from leadscore.services.locks import LocalClientLocks
from leadscore.services.rate_store import SqlConversionRateStore


DEFAULT_WEIGHTS = {
    'service': 30,
    'ad_set_name': 10,
    'ad_name': 10,
    'lead_date': 0,
    'zip': 50,
}

# Modules that bind get_session at import time
_SESSION_USERS = [
    'leadscore.services.lead_store.get_session',
    'leadscore.services.rate_store.get_session',
    'leadscore.services.job_log.get_session',
    'leadscore.services.client_settings.get_session',
]


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created, shared across sessions."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import leadscore.models.lead
    import leadscore.models.conversion_rate
    import leadscore.models.client_settings
    import leadscore.models.job_log
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture(autouse=True)
def patch_get_session(session_factory):
    """
    Route every get_session() call to the in-memory engine.

    Each call returns a fresh session so close() inside production code does
    not affect other sessions.
    """
    patchers = [patch(target, side_effect=lambda: session_factory()) for target in _SESSION_USERS]
    for p in patchers:
        p.start()
    yield session_factory
    for p in patchers:
        p.stop()


@pytest.fixture
def lead_store(session_factory):
    return SqlLeadStore(session_factory=session_factory)


@pytest.fixture
def rate_store(session_factory):
    return SqlConversionRateStore(session_factory=session_factory)


@pytest.fixture
def locks():
    return LocalClientLocks(timeout=1)


@pytest.fixture
def orchestrator(lead_store, rate_store, locks):
    counter = itertools.count(1)
    return ScoringOrchestrator(
        lead_store,
        rate_store,
        weights=DEFAULT_WEIGHTS,
        locks=locks,
        batch_id_factory=lambda: f'batch-{next(counter)}',
    )


@pytest.fixture
def make_lead():
    """Factory fixture — builds LeadRecords with unique ids."""
    counter = itertools.count(1)

    def _make(**overrides):
        defaults = dict(
            id=f'lead-{next(counter):03d}',
            client_id='client-a',
            status='new',
            service='Roofing',
            ad_set_name='Spring Promo',
            ad_name='Ad 1',
            zip='30301',
            lead_date='2025-03-14',
            email='owner@example.com',
            phone='(404) 555-0100',
        )
        defaults.update(overrides)
        return LeadRecord(**defaults)
    return _make


@pytest.fixture
def app():
    """Flask test app."""
    from leadscore import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c
