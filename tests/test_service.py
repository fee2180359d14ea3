from __future__ import annotations

import asyncio
import dataclasses
import gc
from datetime import datetime, timezone

import httpx
import pytest

from core import upstream
from core.config import Settings
from core.errors import MissingCredential
from dashboard import service
from dashboard.schemas import StudentRecord

from tests.conftest import FakeUpstreams, iso_in

TOKEN = "Bearer token-123"

SCENARIO_STUDENTS = [
    {"id": 1, "class": "5A", "vaccinationRecords": [{}]},
    {"id": 2, "class": "5A", "vaccinationRecords": []},
]


def _overview(fake: FakeUpstreams, settings: Settings, authorization: str | None = TOKEN, **kwargs):
    return asyncio.run(
        service.get_overview(authorization, settings=settings, transport=fake.transport, **kwargs)
    )


def _stats(fake: FakeUpstreams, settings: Settings, authorization: str | None = TOKEN):
    return asyncio.run(service.get_stats(authorization, settings=settings, transport=fake.transport))


def test_overview_scenario(settings: Settings) -> None:
    fake = FakeUpstreams(
        students=SCENARIO_STUDENTS,
        drives={"data": [{"id": "d1", "isExpired": False, "date": iso_in(10)}]},
    )

    result = _overview(fake, settings)

    assert result.total_students == 2
    assert result.vaccination_percentage == "50.00"
    assert result.upcoming_drives == 1
    assert result.upcoming_drives_list[0].id == "d1"
    # Sequential by default: students first, then drives.
    assert fake.paths() == ["/students", "/drives"]
    assert all(call.headers["Authorization"] == TOKEN for call in fake.calls)


def test_overview_projection_and_upcoming_filter(settings: Settings) -> None:
    fake = FakeUpstreams(
        students=[],
        drives={
            "data": [
                {
                    "id": "future",
                    "vaccineName": "Polio",
                    "date": iso_in(3),
                    "grades": "1-3",
                    "avilableDoses": 50,
                    "isExpired": False,
                    "location": "Gym",
                },
                {"id": "expired", "date": iso_in(3), "isExpired": True},
                {"id": "past", "date": iso_in(-3), "isExpired": False},
                {"id": "undated", "isExpired": False},
            ]
        },
    )

    result = _overview(fake, settings)
    body = result.model_dump(by_alias=True)

    assert body["totalStudents"] == 0
    assert body["vaccinationPercentage"] == "0.00"
    assert body["upcomingDrives"] == 1
    assert body["upcomingDrivesList"] == [
        {
            "id": "future",
            "vaccineName": "Polio",
            "date": fake.drives["data"][0]["date"],
            "grades": "1-3",
            "availableDoses": 50,
        }
    ]


def test_upcoming_is_evaluated_against_request_time(settings: Settings) -> None:
    fake = FakeUpstreams(drives={"data": [{"id": "d1", "date": "2030-06-01T00:00:00Z"}]})

    before = _overview(fake, settings, now=datetime(2030, 5, 1, tzinfo=timezone.utc))
    after = _overview(fake, settings, now=datetime(2030, 7, 1, tzinfo=timezone.utc))

    assert before.upcoming_drives == 1
    assert after.upcoming_drives == 0


@pytest.mark.parametrize("authorization", [None, "", "   "])
def test_missing_credential_makes_no_upstream_call(settings: Settings, authorization) -> None:
    fake = FakeUpstreams()

    with pytest.raises(MissingCredential):
        _overview(fake, settings, authorization=authorization)
    with pytest.raises(MissingCredential):
        _stats(fake, settings, authorization=authorization)

    assert fake.calls == []


def test_overview_stops_after_student_failure(settings: Settings) -> None:
    fake = FakeUpstreams(students=httpx.ReadTimeout("slow"))

    with pytest.raises(upstream.UpstreamTimeout):
        _overview(fake, settings)
    assert fake.paths() == ["/students"]


def test_stats_counts_and_grade_breakdown(settings: Settings) -> None:
    fake = FakeUpstreams(
        students=[
            {"id": 1, "class": "5A", "vaccinationRecords": [{}]},
            {"id": 2, "class": "6B", "vaccinationRecords": []},
            {"id": 3, "class": "5A", "vaccinationRecords": []},
            {"id": 4, "class": "6B", "vaccinationRecords": [{}, {}]},
            {"id": 5, "class": "6B"},
        ],
        drives={
            "data": [
                {"id": "d1", "isExpired": True},
                {"id": "d2", "isExpired": False},
            ]
        },
    )

    body = _stats(fake, settings).model_dump(by_alias=True)

    assert body["totalDrives"] == 2
    assert body["completedDrives"] == 1
    assert body["activeDrives"] == 1
    assert body["averageStudentsPerDrive"] == "2.50"
    assert body["studentParticipationRate"] == "40.00"
    assert list(body["vaccinationByGrade"]) == ["5A", "6B"]
    assert body["vaccinationByGrade"]["5A"] == {"total": 2, "vaccinated": 1, "percentage": "50.00"}
    assert body["vaccinationByGrade"]["6B"] == {"total": 3, "vaccinated": 1, "percentage": "33.33"}
    assert sorted(fake.paths()) == ["/drives", "/students"]


def test_stats_missing_data_field_yields_zero(settings: Settings) -> None:
    fake = FakeUpstreams(students=SCENARIO_STUDENTS, drives={})

    body = _stats(fake, settings).model_dump(by_alias=True)

    assert body["totalDrives"] == 0
    assert body["averageStudentsPerDrive"] == 0
    assert body["studentParticipationRate"] == "50.00"


def test_stats_with_no_students(settings: Settings) -> None:
    body = _stats(FakeUpstreams(), settings).model_dump(by_alias=True)

    assert body["studentParticipationRate"] == 0
    assert body["vaccinationByGrade"] == {}


def test_results_are_idempotent(settings: Settings) -> None:
    fake = FakeUpstreams(
        students=SCENARIO_STUDENTS,
        drives={"data": [{"id": "d1", "date": iso_in(5)}, {"id": "d2", "isExpired": True}]},
    )
    now = datetime.now(timezone.utc)

    first = _overview(fake, settings, now=now).model_dump_json(by_alias=True)
    second = _overview(fake, settings, now=now).model_dump_json(by_alias=True)
    assert first == second

    assert _stats(fake, settings).model_dump_json(by_alias=True) == _stats(
        fake, settings
    ).model_dump_json(by_alias=True)


def test_parallel_fetch_reports_first_failure_and_cancels_the_other(settings: Settings) -> None:
    finished: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/students":
            raise httpx.ConnectError("Connection refused", request=request)
        await asyncio.sleep(2)
        finished.append("drives")
        return httpx.Response(200, json={"data": []})

    with pytest.raises(upstream.UpstreamConnectionRefused) as exc_info:
        asyncio.run(
            service.get_stats(TOKEN, settings=settings, transport=httpx.MockTransport(handler))
        )

    assert exc_info.value.source == "students"
    assert finished == []


def test_overview_can_run_in_parallel_mode(settings: Settings) -> None:
    parallel = dataclasses.replace(settings, overview_fetch_mode="parallel")
    fake = FakeUpstreams(
        students=SCENARIO_STUDENTS,
        drives={"data": [{"id": "d1", "isExpired": False, "date": iso_in(10)}]},
    )

    result = _overview(fake, parallel)

    assert result.vaccination_percentage == "50.00"
    assert sorted(fake.paths()) == ["/drives", "/students"]


def test_participation_percentage_bounds() -> None:
    assert service.participation_percentage([]) == 0.0

    nobody = [StudentRecord(id=i, grade="1") for i in range(3)]
    assert service.participation_percentage(nobody) == 0.0

    everybody = [StudentRecord(id=i, grade="1", vaccination_records=[{}]) for i in range(3)]
    assert service.participation_percentage(everybody) == 100.0


def test_grade_totals_add_up_to_student_count() -> None:
    students = [
        StudentRecord(id=i, grade=grade, vaccination_records=[{}] if i % 2 else [])
        for i, grade in enumerate(["1", "2", "1", "3", "2", "1"])
    ]

    breakdown = service.vaccination_by_grade(students)

    assert sum(bucket.total for bucket in breakdown.values()) == len(students)
    assert all(bucket.vaccinated <= bucket.total for bucket in breakdown.values())


def test_stats_keep_drives_with_non_bool_is_expired(settings: Settings) -> None:
    fake = FakeUpstreams(drives={"data": [{"id": "d1", "isExpired": 2}, {"id": "d2", "isExpired": "x"}]})

    body = _stats(fake, settings).model_dump(by_alias=True)

    assert body["totalDrives"] == 2
    assert body["completedDrives"] == 2
    assert body["activeDrives"] == 0


def test_parallel_fetch_retrieves_every_failure(settings: Settings) -> None:
    unretrieved: list[dict] = []
    fake = FakeUpstreams(
        students=httpx.ReadTimeout("slow"),
        drives=httpx.ConnectError("Connection refused"),
    )

    async def run() -> None:
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: unretrieved.append(context))
        await service.get_stats(TOKEN, settings=settings, transport=fake.transport)

    with pytest.raises((upstream.UpstreamTimeout, upstream.UpstreamConnectionRefused)):
        asyncio.run(run())
    gc.collect()

    assert unretrieved == []
