"""
Shared fixtures for the MediDispatch test suite.
"""

from datetime import datetime, timedelta

import pytest

from medidispatch.core.allocation_engine import AllocationEngine
from medidispatch.core.change_notifier import ChangeNotifier
from medidispatch.core.entity_store import EntityStore
from medidispatch.core.query_views import QueryViews


class FakeClock:
    """Store clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 3, 14, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def report_payload(**overrides):
    payload = {
        "patient_name": "Jane Doe",
        "patient_age": 54,
        "patient_phone": "+15551234567",
        "patient_address": "221 Baker Street",
        "symptoms": "Sudden chest pain radiating to left arm",
        "severity": "critical",
        "pickup_location": "221 Baker Street, front door",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return ChangeNotifier(max_history=100)


@pytest.fixture
def store(notifier, clock):
    return EntityStore(notifier=notifier, clock=clock)


@pytest.fixture
def engine(store):
    return AllocationEngine(store, hold_duration=timedelta(minutes=30))


@pytest.fixture
def views(store):
    return QueryViews(store)


@pytest.fixture
def make_hospital(engine):
    async def _make(hospital_id="H1", total_beds=10, available_beds=None, icu_beds=2, available_icu_beds=None):
        return await engine.register_hospital({
            "id": hospital_id,
            "name": f"Hospital {hospital_id}",
            "address": "1 Hospital Road",
            "total_beds": total_beds,
            "icu_beds": icu_beds,
            "available_beds": available_beds,
            "available_icu_beds": available_icu_beds,
        })
    return _make


@pytest.fixture
def make_ambulance(engine):
    async def _make(ambulance_id="A1", vehicle_number=None, status="available"):
        return await engine.register_ambulance({
            "id": ambulance_id,
            "vehicle_number": vehicle_number or f"AMB-{ambulance_id}",
            "current_location": "Central Station",
            "status": status,
        })
    return _make


@pytest.fixture
def make_report(engine):
    async def _make(report_id="R1", **overrides):
        return await engine.create_emergency_report(report_payload(id=report_id, **overrides))
    return _make
