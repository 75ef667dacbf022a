"""
Tests for the dashboard read views.
"""

import pytest

from medidispatch.core.errors import NotFoundError


async def test_available_lists_exclude_busy_and_full(engine, views, make_hospital, make_ambulance, make_report):
    await make_hospital("H1", total_beds=5, available_beds=1)
    await make_hospital("H2", total_beds=5, available_beds=0)
    await make_ambulance("A1")
    await make_ambulance("A2")
    await make_ambulance("A3", status="maintenance")
    await make_report("R1")

    await engine.assign_ambulance("R1", "A1", "H1")

    assert [a.id for a in views.available_ambulances()] == ["A2"]
    assert views.available_hospitals() == []
    assert [h.id for h in views.all_hospitals()] == ["H1", "H2"]


async def test_reports_are_listed_oldest_first(engine, views, clock, make_hospital, make_ambulance, make_report):
    await make_hospital("H1")
    await make_ambulance("A1")
    await make_report("R-late")
    clock.advance(minutes=-10)
    await make_report("R-early")
    clock.advance(minutes=20)
    await make_report("R-new")

    assert [r.id for r in views.pending_reports()] == ["R-early", "R-late", "R-new"]

    await engine.assign_ambulance("R-late", "A1", "H1")

    assert [r.id for r in views.pending_reports()] == ["R-early", "R-new"]
    assert [r.id for r in views.active_reports()] == ["R-late"]


async def test_incoming_ambulances_join_report_details(engine, views, make_hospital, make_ambulance, make_report):
    await make_hospital("H1")
    await make_hospital("H2")
    await make_ambulance("A1", vehicle_number="AMB-1")
    await make_ambulance("A2", vehicle_number="AMB-2")
    await make_report("R1", patient_name="Alice Smith", severity="high")
    await make_report("R2", patient_name="Bob Jones")

    result = await engine.assign_ambulance("R1", "A1", "H1")
    await engine.assign_ambulance("R2", "A2", "H2")

    incoming = views.incoming_ambulances("H1")
    assert len(incoming) == 1
    assert incoming[0].ambulance_id == "A1"
    assert incoming[0].vehicle_number == "AMB-1"
    assert incoming[0].report_id == "R1"
    assert incoming[0].patient_name == "Alice Smith"
    assert incoming[0].severity == "high"
    assert incoming[0].hold_expiry == result.ambulance.hold_expiry

    await engine.release_ambulance("A1")
    assert views.incoming_ambulances("H1") == []


async def test_hospital_views_reject_unknown_hospital(views):
    with pytest.raises(NotFoundError):
        views.incoming_ambulances("nope")
    with pytest.raises(NotFoundError):
        views.hospital_ambulances("nope")


async def test_expired_holds_use_store_clock(engine, views, clock, make_hospital, make_ambulance, make_report):
    await make_hospital("H1")
    await make_ambulance("A1")
    await make_ambulance("A2")
    await make_report("R1")
    await make_report("R2")
    await engine.assign_ambulance("R1", "A1", "H1")
    clock.advance(minutes=10)
    await engine.assign_ambulance("R2", "A2", "H1")

    clock.advance(minutes=25)
    assert [a.id for a in views.expired_holds()] == ["A1"]
    assert [a.id for a in views.hospital_ambulances("H1")] == ["A1", "A2"]

    clock.advance(minutes=10)
    assert [a.id for a in views.expired_holds()] == ["A1", "A2"]


async def test_dispatch_stats_counts(engine, views, make_hospital, make_ambulance, make_report):
    await make_hospital("H1", total_beds=10, available_beds=3, icu_beds=2, available_icu_beds=1)
    await make_hospital("H2", total_beds=5, available_beds=0, icu_beds=0)
    await make_ambulance("A1")
    await make_ambulance("A2")
    await make_ambulance("A3", status="maintenance")
    await make_report("R1")
    await make_report("R2")
    await make_report("R3")
    await engine.assign_ambulance("R1", "A1", "H1")
    await engine.assign_ambulance("R2", "A2", "H1")
    await engine.release_ambulance("A2")

    stats = views.dispatch_stats()

    assert stats.total_ambulances == 3
    assert stats.available_ambulances == 1
    assert stats.busy_ambulances == 1
    assert stats.maintenance_ambulances == 1
    assert stats.pending_reports == 1
    assert stats.active_reports == 1
    assert stats.completed_reports == 1
    assert stats.hospitals == 2
    assert stats.hospitals_with_beds == 1
    assert stats.total_available_beds == 2
    assert stats.total_available_icu_beds == 1
