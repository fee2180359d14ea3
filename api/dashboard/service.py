"""
Dashboard aggregation.

Flow:
1) Check the forwarded credential (no upstream call without one)
2) Fetch students + drives (sequential or parallel, per operation setting)
3) Normalize both payloads
4) Compute derived statistics

Nothing is cached; every call reads both upstreams once.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Iterable

import httpx

from core import upstream
from core.config import Settings
from core.errors import MissingCredential

from . import normalize, schemas

logger = logging.getLogger(__name__)

STUDENTS_PATH = "/students"
DRIVES_PATH = "/drives"


def format_two_decimals(value: float) -> str:
    return f"{value:.2f}"


def participation_percentage(students: list[schemas.StudentRecord]) -> float:
    """
    Share of students with at least one vaccination record, in [0, 100].
    """
    total = len(students)
    if total == 0:
        return 0.0
    vaccinated = sum(1 for student in students if student.vaccinated)
    return vaccinated / total * 100


def upcoming_drives(drives: Iterable[schemas.DriveRecord], *, now: datetime) -> list[schemas.DriveRecord]:
    upcoming: list[schemas.DriveRecord] = []
    for drive in drives:
        if drive.is_expired:
            continue
        scheduled_at = drive.scheduled_at()
        if scheduled_at is not None and scheduled_at > now:
            upcoming.append(drive)
    return upcoming


def vaccination_by_grade(students: Iterable[schemas.StudentRecord]) -> dict[str, schemas.GradeBreakdown]:
    # Buckets keep the order in which each grade first appears.
    counts: dict[str, dict[str, int]] = {}
    for student in students:
        bucket = counts.setdefault(student.grade, {"total": 0, "vaccinated": 0})
        bucket["total"] += 1
        if student.vaccinated:
            bucket["vaccinated"] += 1

    breakdown: dict[str, schemas.GradeBreakdown] = {}
    for grade, bucket in counts.items():
        total = bucket["total"]
        percentage: str | int = (
            format_two_decimals(bucket["vaccinated"] / total * 100) if total > 0 else 0
        )
        breakdown[grade] = schemas.GradeBreakdown(
            total=total,
            vaccinated=bucket["vaccinated"],
            percentage=percentage,
        )
    return breakdown


def _require_credential(authorization: str | None) -> str:
    if not (authorization or "").strip():
        raise MissingCredential("Authorization header is required.")
    return str(authorization)


async def _fetch_students(
    authorization: str,
    *,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None,
) -> Any:
    return await upstream.fetch_json(
        base_url=settings.student_service_url,
        path=STUDENTS_PATH,
        authorization=authorization,
        source="students",
        timeout_s=settings.upstream_timeout_s,
        transport=transport,
    )


async def _fetch_drives(
    authorization: str,
    *,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None,
) -> Any:
    return await upstream.fetch_json(
        base_url=settings.drive_service_url,
        path=DRIVES_PATH,
        authorization=authorization,
        source="drives",
        timeout_s=settings.upstream_timeout_s,
        transport=transport,
    )


async def _fetch_parallel(
    authorization: str,
    *,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None,
) -> tuple[Any, Any]:
    students_task = asyncio.create_task(
        _fetch_students(authorization, settings=settings, transport=transport)
    )
    drives_task = asyncio.create_task(
        _fetch_drives(authorization, settings=settings, transport=transport)
    )
    tasks = (students_task, drives_task)

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    # Read every finished task's exception so none is left unretrieved.
    failures = [task.exception() for task in tasks if task in done and task.exception() is not None]
    if failures:
        # The other call's outcome no longer matters; let it unwind.
        await asyncio.gather(*pending, return_exceptions=True)
        raise failures[0]

    return students_task.result(), drives_task.result()


async def fetch_upstreams(
    authorization: str,
    *,
    settings: Settings,
    mode: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[Any, Any]:
    """
    Fetch raw student and drive payloads.

    `mode` is "sequential" (students, then drives) or "parallel". Either
    upstream failing fails the whole fetch; there is no partial result.
    """
    if mode == "parallel":
        return await _fetch_parallel(authorization, settings=settings, transport=transport)

    students_payload = await _fetch_students(authorization, settings=settings, transport=transport)
    drives_payload = await _fetch_drives(authorization, settings=settings, transport=transport)
    return students_payload, drives_payload


async def get_overview(
    authorization: str | None,
    *,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    now: datetime | None = None,
) -> schemas.OverviewResponse:
    authorization = _require_credential(authorization)
    students_payload, drives_payload = await fetch_upstreams(
        authorization,
        settings=settings,
        mode=settings.overview_fetch_mode,
        transport=transport,
    )
    students = normalize.normalize_students(students_payload)
    drives = normalize.normalize_drives(drives_payload)

    now = now or datetime.now(timezone.utc)
    upcoming = upcoming_drives(drives, now=now)

    logger.info(
        "dashboard_overview students=%d drives=%d upcoming=%d",
        len(students),
        len(drives),
        len(upcoming),
    )
    return schemas.OverviewResponse(
        total_students=len(students),
        vaccination_percentage=format_two_decimals(participation_percentage(students)),
        upcoming_drives=len(upcoming),
        upcoming_drives_list=[
            schemas.UpcomingDrive(
                id=drive.id,
                vaccine_name=drive.vaccine_name,
                date=drive.date,
                grades=drive.grades,
                available_doses=drive.available_doses,
            )
            for drive in upcoming
        ],
    )


async def get_stats(
    authorization: str | None,
    *,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> schemas.StatsResponse:
    authorization = _require_credential(authorization)
    students_payload, drives_payload = await fetch_upstreams(
        authorization,
        settings=settings,
        mode=settings.stats_fetch_mode,
        transport=transport,
    )
    students = normalize.normalize_students(students_payload)
    drives = normalize.normalize_drives(drives_payload)

    total_students = len(students)
    total_drives = len(drives)
    completed = sum(1 for drive in drives if drive.is_expired)

    # Zero denominators report a bare 0 rather than "0.00".
    average_per_drive: str | int = (
        format_two_decimals(total_students / total_drives) if total_drives > 0 else 0
    )
    participation_rate: str | int = (
        format_two_decimals(participation_percentage(students)) if total_students > 0 else 0
    )

    logger.info("dashboard_stats students=%d drives=%d", total_students, total_drives)
    return schemas.StatsResponse(
        total_drives=total_drives,
        completed_drives=completed,
        active_drives=total_drives - completed,
        average_students_per_drive=average_per_drive,
        student_participation_rate=participation_rate,
        vaccination_by_grade=vaccination_by_grade(students),
    )
