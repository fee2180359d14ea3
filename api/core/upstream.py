"""
Upstream HTTP client helpers.

Used endpoints:
- GET {STUDENT_SERVICE_URL}/students -> [{"id": ..., "class": ..., "vaccinationRecords": [...]}, ...]
- GET {DRIVE_SERVICE_URL}/drives     -> {"data": [{"id": ..., "isExpired": ..., "date": ...}, ...]}

One attempt per call, bounded by `timeout_s`. No retries.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0


# Upstream failures are explicit and separable from other runtime errors.
class UpstreamError(RuntimeError):
    kind = "other"

    def __init__(self, message: str, *, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class UpstreamConnectionRefused(UpstreamError):
    kind = "connection_refused"


class UpstreamTimeout(UpstreamError):
    kind = "timeout"


class UpstreamFailure(UpstreamError):
    pass


def _normalize_base_url(base_url: str, *, source: str) -> str:
    base_url = (base_url or "").strip()
    if not base_url:
        raise UpstreamFailure(f"Base URL for {source or 'upstream'} is empty.", source=source)
    return base_url.rstrip("/")


def _is_connection_refused(exc: BaseException) -> bool:
    # httpx wraps the OS error; walk the chain looking for ECONNREFUSED.
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionRefusedError):
            return True
        if "refused" in str(current).lower():
            return True
        current = current.__cause__ or current.__context__
    return False


async def fetch_json(
    *,
    base_url: str,
    path: str,
    authorization: str,
    source: str = "",
    timeout_s: float = DEFAULT_TIMEOUT_S,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """
    GET `path` on `base_url`, forwarding `authorization` verbatim.

    Returns the decoded JSON body, or raises an `UpstreamError` subclass.
    """
    base_url = _normalize_base_url(base_url, source=source)
    headers = {
        "Authorization": authorization,
        "Content-Type": "application/json",
    }

    logger.info("upstream_fetch source=%s url=%s%s", source, base_url, path)
    try:
        async with httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            transport=transport,
        ) as client:
            resp = await client.get(path, headers=headers)
    except httpx.TimeoutException as exc:
        raise UpstreamTimeout(f"{source or 'upstream'} request timed out: {exc}", source=source) from exc
    except httpx.ConnectError as exc:
        if _is_connection_refused(exc):
            raise UpstreamConnectionRefused(
                f"{source or 'upstream'} refused the connection: {exc}",
                source=source,
            ) from exc
        raise UpstreamFailure(f"{source or 'upstream'} connection failed: {exc}", source=source) from exc
    except httpx.HTTPError as exc:
        raise UpstreamFailure(f"{source or 'upstream'} request failed: {exc}", source=source) from exc

    if not 200 <= resp.status_code < 300:
        # Avoid dumping huge bodies; include a small snippet.
        body = resp.text[:300]
        raise UpstreamFailure(
            f"Request failed with status code {resp.status_code}: {body}",
            source=source,
        )

    try:
        return resp.json()
    except ValueError as exc:
        raise UpstreamFailure(f"{source or 'upstream'} returned a non-JSON body.", source=source) from exc
