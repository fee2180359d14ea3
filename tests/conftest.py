from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from main import create_app

STUDENT_HOST = "student-service.test"
DRIVE_HOST = "drive-service.test"
JWT_SECRET = "test-secret-for-dashboard-service-jwt"


def make_token(*, secret: str = JWT_SECRET, expires_in_s: int = 600) -> str:
    now = int(time.time())
    return jwt.encode({"sub": "42", "iat": now, "exp": now + expires_in_s}, secret, algorithm="HS256")


def iso_in(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


class FakeUpstreams:
    """
    Stands in for the student and drive services behind one MockTransport.

    `students` / `drives` may be a JSON-able payload, an `httpx.Response`, or
    an exception to raise for that service.
    """

    def __init__(self, students: Any = None, drives: Any = None) -> None:
        self.students: Any = [] if students is None else students
        self.drives: Any = {"data": []} if drives is None else drives
        self.calls: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        outcome = self.students if request.url.host == STUDENT_HOST else self.drives
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        return httpx.Response(200, json=outcome)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.calls]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        port=4003,
        student_service_url=f"http://{STUDENT_HOST}",
        drive_service_url=f"http://{DRIVE_HOST}",
        jwt_secret=JWT_SECRET,
        environment="test",
    )


@pytest.fixture
def upstreams() -> FakeUpstreams:
    return FakeUpstreams()


@pytest.fixture
def client(settings: Settings, upstreams: FakeUpstreams) -> TestClient:
    app = create_app(settings, upstream_transport=upstreams.transport)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}
