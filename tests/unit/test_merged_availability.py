"""
Unit tests for AvailabilityService.merged_availability.

Repositories and the network resolver are replaced with AsyncMocks so the
whole pipeline (network -> schedule -> slots -> conflicts) runs in memory.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from app.modules.availability.errors import PayerNotFound
from app.modules.availability.schemas import MergedAvailabilityOut, MergedAvailabilityRequest
from app.modules.availability.service import (
    AvailabilityService,
    MSG_LOAD_FAILED,
    MSG_NO_PROVIDERS,
    MSG_PAYER_NOT_BOOKABLE,
)
from app.modules.network.resolver import DirectRelationship, SupervisedRelationship
from tests.fixtures import DENVER, MONDAY, FakeEhr, booked, make_block, make_exception, make_payer, make_provider

NOW = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)
EXPECTED_TIMES = ["09:00", "10:15", "11:30", "12:45", "14:00", "15:15"]


def direct(provider, effective=date(2024, 1, 1), expiration=None):
    return DirectRelationship(provider=provider, payer_id=uuid.uuid4(), effective_date=effective, expiration_date=expiration)


def supervised(provider, billing, co_visit=False, effective=date(2024, 1, 1)):
    return SupervisedRelationship(
        provider=provider,
        billing_provider=billing,
        billing_provider_id=billing.id,
        payer_id=uuid.uuid4(),
        supervision_level="co_visit_required" if co_visit else "sign_off_only",
        requires_co_visit=co_visit,
        effective_date=effective,
    )


def build_service(session, *, payer=None, entries=(), blocks=(), exceptions=(), booking=None, appointments=(), ehr=None):
    svc = AvailabilityService(session, ehr=ehr)
    svc.payers = MagicMock(get=AsyncMock(return_value=payer or make_payer()))
    svc.network = MagicMock(resolve=AsyncMock(return_value=list(entries)))
    svc.repo = MagicMock()
    svc.repo.list_blocks = AsyncMock(return_value=list(blocks))
    svc.repo.list_exceptions = AsyncMock(return_value=list(exceptions))
    svc.repo.booking_settings = AsyncMock(return_value=booking or {})
    svc.appointments = MagicMock(list_blocking=AsyncMock(return_value=list(appointments)))
    return svc


def request(**kw):
    kw.setdefault("payer_id", uuid.uuid4())
    kw.setdefault("date", MONDAY)
    kw.setdefault("appointment_duration", 60)
    kw.setdefault("buffer_minutes", 15)
    return MergedAvailabilityRequest(**kw)


def times_for(result, provider):
    return [s["time"] for s in result["slots"] if s["provider_id"] == provider.id]


@pytest.fixture
def anna():
    return make_provider("Anna", "Avery")


@pytest.fixture
def ben():
    return make_provider("Ben", "Brooks", role="resident")


# =============================================================================
# End-to-end scenario
# =============================================================================

class TestDirectAndSupervised:
    async def test_monday_slots_for_both_providers(self, mock_session, org_id, anna, ben):
        svc = build_service(
            mock_session,
            entries=[direct(anna), supervised(ben, anna)],
            blocks=[make_block(anna.id, 1), make_block(ben.id, 1)],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["total_slots"] == 12
        assert times_for(result, anna) == EXPECTED_TIMES
        assert times_for(result, ben) == EXPECTED_TIMES
        assert [s["provider_name"] for s in result["slots"][:2]] == ["Anna Avery", "Ben Brooks"]
        assert {s["relationship_kind"] for s in result["slots"] if s["provider_id"] == ben.id} == {"supervised"}
        assert {s["billing_provider_id"] for s in result["slots"] if s["provider_id"] == ben.id} == {anna.id}
        assert list(result["slots_by_date"]) == [MONDAY.isoformat()]
        assert [p["name"] for p in result["providers"]] == ["Anna Avery", "Ben Brooks"]
        assert result["message"].startswith("Found 12 available slots")
        MergedAvailabilityOut(**result)

    async def test_direct_label_wins_when_provider_has_both(self, mock_session, org_id, anna, ben):
        svc = build_service(
            mock_session,
            entries=[direct(anna), direct(ben), supervised(ben, anna)],
            blocks=[make_block(anna.id, 1), make_block(ben.id, 1)],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        ben_slots = [s for s in result["slots"] if s["provider_id"] == ben.id]
        assert len(ben_slots) == 6
        assert {s["relationship_kind"] for s in ben_slots} == {"direct"}
        assert {s["billing_provider_id"] for s in ben_slots} == {ben.id}

    async def test_identical_inputs_identical_output(self, mock_session, org_id, anna, ben):
        svc = build_service(
            mock_session,
            entries=[direct(anna), supervised(ben, anna)],
            blocks=[make_block(anna.id, 1), make_block(ben.id, 1)],
        )

        q = request()
        first = await svc.merged_availability(org_id, q, now=NOW)
        second = await svc.merged_availability(org_id, q, now=NOW)

        assert first["slots"] == second["slots"]
        assert first["conflict_checks"] == second["conflict_checks"]

    async def test_range_groups_by_date(self, mock_session, org_id, anna):
        svc = build_service(
            mock_session,
            entries=[direct(anna)],
            blocks=[make_block(anna.id, 1), make_block(anna.id, 2, "13:00", "15:00")],
        )

        result = await svc.merged_availability(org_id, request(date=None, start_date=MONDAY, end_date=MONDAY + timedelta(days=2)), now=NOW)

        assert list(result["slots_by_date"]) == ["2025-06-02", "2025-06-03"]
        assert [s["time"] for s in result["slots_by_date"]["2025-06-03"]] == ["13:00"]
        assert result["date_range"] == {"start_date": MONDAY, "end_date": MONDAY + timedelta(days=2)}


# =============================================================================
# Fail-open conflict checks
# =============================================================================

class TestConflictChecks:
    async def test_unmapped_provider_returned_unfiltered_with_debug_flag(self, mock_session, org_id, anna):
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1)], ehr=FakeEhr())

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, anna) == EXPECTED_TIMES
        assert result["conflict_checks"] == [
            {"provider_id": anna.id, "date": MONDAY, "status": "skipped", "removed": 0, "reason": "no_ehr_mapping"}
        ]
        assert result["debug"]["conflict_check_skipped"] == [
            {"provider_id": str(anna.id), "date": "2025-06-02", "reason": "no_ehr_mapping"}
        ]
        assert any("Anna Avery" in w for w in result["warnings"])

    async def test_ehr_appointment_removes_overlapping_slot(self, mock_session, org_id):
        anna = make_provider("Anna", "Avery", intakeq_practitioner_id="ipr-a")
        ehr = FakeEhr(busy={("ipr-a", MONDAY): [booked(MONDAY, "10:00", "11:00")]})
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1)], ehr=ehr)

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, anna) == ["09:00", "11:30", "12:45", "14:00", "15:15"]
        assert result["conflict_checks"][0]["status"] == "filtered"
        assert result["conflict_checks"][0]["removed"] == 1
        assert result["warnings"] == []

    async def test_local_appointments_applied(self, mock_session, org_id, anna):
        zone = ZoneInfo(DENVER)
        appt = SimpleNamespace(
            id=uuid.uuid4(),
            provider_id=anna.id,
            start_time=datetime(2025, 6, 2, 14, 0, tzinfo=zone),
            end_time=datetime(2025, 6, 2, 15, 0, tzinfo=zone),
        )
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1)], appointments=[appt])

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, anna) == ["09:00", "10:15", "11:30", "12:45", "15:15"]

    async def test_local_appointment_load_failure_degrades(self, mock_session, org_id, anna):
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1)])
        svc.appointments.list_blocking.side_effect = OperationalError("SELECT", {}, Exception("boom"))

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, anna) == EXPECTED_TIMES
        assert any("local appointments" in w for w in result["warnings"])
        mock_session.rollback.assert_awaited()


# =============================================================================
# Schedules and exceptions
# =============================================================================

class TestScheduleRules:
    async def test_full_day_exception_removes_provider(self, mock_session, org_id, anna, ben):
        svc = build_service(
            mock_session,
            entries=[direct(anna), supervised(ben, anna)],
            blocks=[make_block(anna.id, 1), make_block(ben.id, 1)],
            exceptions=[make_exception(anna.id, MONDAY, "unavailable")],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, anna) == []
        assert times_for(result, ben) == EXPECTED_TIMES

    async def test_custom_hours_bound_slots(self, mock_session, org_id, anna):
        svc = build_service(
            mock_session,
            entries=[direct(anna)],
            blocks=[make_block(anna.id, 1, "08:00", "17:00")],
            exceptions=[make_exception(anna.id, MONDAY, "custom_hours", "09:00", "12:00")],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, anna) == ["09:00", "10:15"]

    async def test_no_availability_message(self, mock_session, org_id, anna):
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[])

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["total_slots"] == 0
        assert result["slots"] == []
        assert result["message"] == "Found 1 providers accepting this insurance, but no availability in the requested dates"
        assert [p["name"] for p in result["providers"]] == ["Anna Avery"]

    async def test_providers_without_slots_still_listed(self, mock_session, org_id, anna, ben):
        svc = build_service(
            mock_session,
            entries=[direct(anna), direct(ben)],
            blocks=[make_block(anna.id, 1)],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, ben) == []
        assert [p["name"] for p in result["providers"]] == ["Anna Avery", "Ben Brooks"]
        assert result["message"] == "Found 6 available slots across 1 providers"

    async def test_relationship_not_yet_effective(self, mock_session, org_id, anna):
        svc = build_service(mock_session, entries=[direct(anna, effective=MONDAY + timedelta(days=1))], blocks=[make_block(anna.id, 1)])

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["total_slots"] == 0

    async def test_payer_effective_date_gates_days(self, mock_session, org_id, anna):
        svc = build_service(
            mock_session,
            payer=make_payer(effective_date=MONDAY + timedelta(days=1)),
            entries=[direct(anna)],
            blocks=[make_block(anna.id, 1)],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["total_slots"] == 0

    async def test_schedule_load_failure_returns_structured_result(self, mock_session, org_id, anna):
        svc = build_service(mock_session, entries=[direct(anna)])
        svc.repo.list_blocks.side_effect = OperationalError("SELECT", {}, Exception("boom"))

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["message"] == MSG_LOAD_FAILED
        assert result["slots"] == []
        assert result["warnings"]


# =============================================================================
# Co-visit
# =============================================================================

class TestCoVisit:
    async def test_co_visit_uses_intersection_with_attending(self, mock_session, org_id, anna, ben):
        svc = build_service(
            mock_session,
            entries=[supervised(ben, anna, co_visit=True)],
            blocks=[make_block(anna.id, 1, "09:00", "17:00"), make_block(ben.id, 1, "08:00", "12:00")],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert times_for(result, ben) == ["09:00", "10:15"]
        assert {s["co_visit_provider_id"] for s in result["slots"]} == {anna.id}
        assert times_for(result, anna) == []

    async def test_attending_day_off_blocks_co_visit(self, mock_session, org_id, anna, ben):
        svc = build_service(
            mock_session,
            entries=[supervised(ben, anna, co_visit=True)],
            blocks=[make_block(anna.id, 1), make_block(ben.id, 1)],
            exceptions=[make_exception(anna.id, MONDAY, "unavailable")],
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["total_slots"] == 0

    async def test_busy_attending_falls_back_to_free_one(self, mock_session, org_id):
        first = make_provider("Anna", "Avery", intakeq_practitioner_id="ipr-a")
        second = make_provider("Cara", "Cole", intakeq_practitioner_id="ipr-c")
        ben = make_provider("Ben", "Brooks", role="resident", intakeq_practitioner_id="ipr-b")
        ehr = FakeEhr(busy={("ipr-a", MONDAY): [booked(MONDAY, "09:00", "10:00")]})
        svc = build_service(
            mock_session,
            entries=[supervised(ben, first, co_visit=True), supervised(ben, second, co_visit=True)],
            blocks=[make_block(first.id, 1), make_block(second.id, 1), make_block(ben.id, 1)],
            ehr=ehr,
        )

        result = await svc.merged_availability(org_id, request(), now=NOW)
        ben_slots = [s for s in result["slots"] if s["provider_id"] == ben.id]

        assert times_for(result, ben) == EXPECTED_TIMES
        assert ben_slots[0]["co_visit_provider_id"] == second.id
        assert ben_slots[0]["billing_provider_id"] == second.id
        assert {s["co_visit_provider_id"] for s in ben_slots[1:]} <= {first.id, second.id}
        MergedAvailabilityOut(**result)


# =============================================================================
# Booking policy
# =============================================================================

class TestBookingSettings:
    async def test_provider_buffer_used_when_request_has_none(self, mock_session, org_id, anna):
        booking = {anna.id: SimpleNamespace(buffer_minutes=0, minimum_notice_hours=None, advance_booking_days=None)}
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1, "09:00", "12:00")], booking=booking)

        result = await svc.merged_availability(org_id, request(buffer_minutes=None), now=NOW)

        assert times_for(result, anna) == ["09:00", "10:00", "11:00"]

    async def test_default_buffer(self, mock_session, org_id, anna):
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1)])

        result = await svc.merged_availability(org_id, request(buffer_minutes=None), now=NOW)

        assert times_for(result, anna) == EXPECTED_TIMES

    async def test_minimum_notice(self, mock_session, org_id, anna):
        booking = {anna.id: SimpleNamespace(buffer_minutes=None, minimum_notice_hours=4, advance_booking_days=None)}
        now = datetime(2025, 6, 2, 8, 0, tzinfo=ZoneInfo(DENVER))
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1)], booking=booking)

        result = await svc.merged_availability(org_id, request(), now=now)

        assert times_for(result, anna) == ["12:45", "14:00", "15:15"]

    async def test_advance_booking_limit(self, mock_session, org_id, anna):
        booking = {anna.id: SimpleNamespace(buffer_minutes=None, minimum_notice_hours=None, advance_booking_days=7)}
        svc = build_service(mock_session, entries=[direct(anna)], blocks=[make_block(anna.id, 1)], booking=booking)

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["total_slots"] == 0


# =============================================================================
# Payer handling
# =============================================================================

class TestPayer:
    async def test_unknown_payer_raises(self, mock_session, org_id):
        svc = build_service(mock_session)
        svc.payers.get = AsyncMock(return_value=None)

        with pytest.raises(PayerNotFound):
            await svc.merged_availability(org_id, request(), now=NOW)

    async def test_payer_not_bookable(self, mock_session, org_id, anna):
        svc = build_service(mock_session, payer=make_payer(credentialing_status="denied", is_bookable=False), entries=[direct(anna)])

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["message"] == MSG_PAYER_NOT_BOOKABLE
        assert result["total_slots"] == 0
        svc.network.resolve.assert_not_awaited()

    async def test_no_providers_message(self, mock_session, org_id):
        svc = build_service(mock_session, entries=[])

        result = await svc.merged_availability(org_id, request(), now=NOW)

        assert result["message"] == MSG_NO_PROVIDERS
        assert result["slots"] == []
