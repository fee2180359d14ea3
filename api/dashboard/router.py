"""
Dashboard API endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from auth import dependencies as auth_dependencies
from core import errors, upstream

from . import schemas, service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard")

_ERROR_RESPONSES = {
    401: {"model": schemas.ErrorResponse, "description": "Unauthorized - Invalid or missing token"},
    503: {"model": schemas.ErrorResponse, "description": "Service unavailable"},
    504: {"model": schemas.ErrorResponse, "description": "Request timeout"},
    500: {"model": schemas.ErrorResponse, "description": "Server error"},
}


def _failure(exc: Exception, *, operation: str, failure_message: str) -> errors.DashboardHTTPError:
    if isinstance(exc, upstream.UpstreamError):
        logger.warning(
            "%s_failed source=%s kind=%s error=%s",
            operation,
            exc.source,
            exc.kind,
            exc,
        )
    outcome = errors.classify(exc, failure_message=failure_message)
    return errors.DashboardHTTPError(outcome)


@router.get(
    "/overview",
    response_model=schemas.OverviewResponse,
    responses=_ERROR_RESPONSES,
    summary="Get dashboard overview",
)
async def get_overview(
    request: Request,
    authorization: str = Depends(auth_dependencies.get_verified_authorization),
) -> schemas.OverviewResponse:
    """
    Total students, vaccination percentage and upcoming drives.
    """
    try:
        return await service.get_overview(
            authorization,
            settings=request.app.state.settings,
            transport=request.app.state.upstream_transport,
        )
    except (errors.MissingCredential, upstream.UpstreamError) as exc:
        raise _failure(
            exc,
            operation="dashboard_overview",
            failure_message="Failed to fetch dashboard overview",
        ) from exc


@router.get(
    "/stats",
    response_model=schemas.StatsResponse,
    responses=_ERROR_RESPONSES,
    summary="Get detailed dashboard statistics",
)
async def get_stats(
    request: Request,
    authorization: str = Depends(auth_dependencies.get_verified_authorization),
) -> schemas.StatsResponse:
    """
    Drive counts, average students per drive and grade-wise vaccination data.
    """
    try:
        return await service.get_stats(
            authorization,
            settings=request.app.state.settings,
            transport=request.app.state.upstream_transport,
        )
    except (errors.MissingCredential, upstream.UpstreamError) as exc:
        raise _failure(
            exc,
            operation="dashboard_stats",
            failure_message="Failed to fetch dashboard statistics",
        ) from exc
