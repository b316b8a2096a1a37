"""
Pytest configuration for audit pipeline tests.
"""
import json

import pytest

from truth_audit.config.settings import Settings
from truth_audit.models.domain import Product
from truth_audit.services.audit_service import AuditService
from truth_audit.workers.audit_worker import AuditSupervisor
from truth_audit.tests.fakes import (
    FakeClock,
    FakeJobQueue,
    InMemoryProductStore,
    InMemoryRunStore,
    InMemoryStageStore,
    ScriptedGenerator,
)


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )


# =============================================================================
# SUBJECTS AND SCRIPTED GENERATOR OUTPUT
# =============================================================================

@pytest.fixture
def product():
    """Power station with a two-entry attribute bag."""
    return Product(
        id='pr_acme0001',
        brand='Acme',
        model_name='PowerBox 1000',
        category='Portable Power Station',
        technical_specs={'brand': 'Acme', 'capacity': '1024Wh'},
        weight_lbs=23.8,
        msrp_usd=799,
    )


@pytest.fixture
def empty_signal():
    return json.dumps({'most_praised': [], 'most_reported_issues': []})


@pytest.fixture
def capacity_flags():
    return json.dumps({
        'reality_ledger': [{'label': 'Capacity', 'value': '942Wh measured'}],
        'red_flags': [{'claim': '1024Wh', 'reality': '942Wh measured', 'severity': 'moderate'}],
    })


@pytest.fixture
def verdict():
    return json.dumps({
        'score_interpretation': 'Capacity runs a little under the rating.',
        'strengths': ['Compact for its class'],
        'limitations': ['Verified: usable capacity below 1024Wh'],
        'practical_impact': ['About 8% less runtime than advertised'],
        'good_fit': ['Weekend campers'],
        'consider_alternatives': ['If you need full rated capacity'],
    })


# =============================================================================
# FAKE INFRASTRUCTURE
# =============================================================================

@pytest.fixture
def settings():
    return Settings(openai_api_key='', _env_file=None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stage_store():
    return InMemoryStageStore()


@pytest.fixture
def run_store(clock):
    return InMemoryRunStore(clock)


@pytest.fixture
def product_store(product):
    return InMemoryProductStore(product)


@pytest.fixture
def job_queue():
    return FakeJobQueue()


@pytest.fixture
def make_supervisor(stage_store, run_store, product_store, settings, clock):
    """Build a supervisor around a scripted generator."""
    def _make(generator: ScriptedGenerator) -> AuditSupervisor:
        return AuditSupervisor(
            stage_store=stage_store,
            run_store=run_store,
            product_store=product_store,
            generator=generator,
            settings=settings,
            clock=clock,
        )
    return _make


@pytest.fixture
def audit_service(stage_store, run_store, product_store, job_queue, clock):
    return AuditService(
        stage_store=stage_store,
        run_store=run_store,
        product_store=product_store,
        job_queue=job_queue,
        clock=clock,
    )
