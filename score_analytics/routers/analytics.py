"""API endpoints for subject score analytics."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from score_analytics.dependencies.services import AnalyticsServiceDep
from score_analytics.schemas.analytics import (
    AdvancedReport,
    AggregationType,
    BasicReport,
    BasicReportFilter,
    CacheInvalidationResponse,
    DashboardOverview,
    FilterValidationResponse,
    ReportFilter,
    ReportFormat,
    SortBy,
    SortOrder,
    TopPerformer,
)
from score_analytics.services.analytics_service import SubjectNotFoundError
from score_analytics.services.report_builder import AnalyticsProcessingError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])


def split_values(values: list[str] | None) -> list[str] | None:
    """Accept both repeated (?a=x&a=y) and comma separated (?a=x,y) list parameters."""
    if values is None:
        return None
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def get_report_filter(
    subjects: list[str] | None = Query(None, description="Subject codes, e.g. toan"),
    foreign_language_codes: list[str] | None = Query(None, description="Foreign language codes, e.g. N1"),
    min_score: float | None = Query(None),
    max_score: float | None = Query(None),
    score_levels: list[str] | None = Query(None, description="excellent, good, average, poor"),
    min_student_count: int | None = Query(None),
    include_statistics: bool = Query(False),
    include_comparison: bool = Query(False),
    aggregation_type: AggregationType = Query(AggregationType.BOTH),
    sort_by: SortBy = Query(SortBy.SUBJECT_NAME),
    sort_order: SortOrder = Query(SortOrder.ASC),
    format: ReportFormat = Query(ReportFormat.TABLE),
) -> ReportFilter:
    """Build a ReportFilter from query parameters."""
    try:
        return ReportFilter(
            subjects=split_values(subjects),
            foreign_language_codes=split_values(foreign_language_codes),
            min_score=min_score,
            max_score=max_score,
            score_levels=split_values(score_levels),
            min_student_count=min_student_count,
            include_statistics=include_statistics,
            include_comparison=include_comparison,
            aggregation_type=aggregation_type,
            sort_by=sort_by,
            sort_order=sort_order,
            format=format,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors())


ReportFilterDep = Annotated[ReportFilter, Depends(get_report_filter)]


@router.get("/reports/subjects/advanced", response_model=AdvancedReport)
async def get_advanced_subject_statistics(
    report_filter: ReportFilterDep, service: AnalyticsServiceDep
) -> AdvancedReport:
    """Subject report with filters, optional descriptive statistics and comparison."""
    try:
        return await service.get_advanced_statistics(report_filter)
    except AnalyticsProcessingError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/reports/subjects", response_model=BasicReport)
async def get_subject_statistics(
    service: AnalyticsServiceDep,
    subjects: list[str] | None = Query(None),
    format: ReportFormat = Query(ReportFormat.TABLE),
) -> BasicReport:
    """Level counts and percentages per subject."""
    try:
        return await service.get_basic_statistics(BasicReportFilter(subjects=split_values(subjects), format=format))
    except AnalyticsProcessingError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/reports/subjects/comparison", response_model=AdvancedReport)
async def get_subject_comparison(
    service: AnalyticsServiceDep,
    subjects: str | None = Query(None, description="Comma separated subject codes"),
    include_statistics: bool = Query(True),
) -> AdvancedReport:
    try:
        return await service.get_subject_comparison(split_values([subjects] if subjects else None), include_statistics)
    except AnalyticsProcessingError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/reports/subjects/{subject}/top-performers", response_model=list[TopPerformer])
async def get_top_performers(
    subject: str,
    service: AnalyticsServiceDep,
    limit: int = Query(10, description="Clamped to 1..100"),
) -> list[TopPerformer]:
    """Best scores of a subject, ignoring any filter."""
    try:
        return await service.get_top_performers(subject, limit)
    except SubjectNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/reports/filters/validate", response_model=FilterValidationResponse)
async def validate_filters(report_filter: ReportFilterDep, service: AnalyticsServiceDep) -> FilterValidationResponse:
    return service.validate_filters(report_filter)


@router.get("/dashboard/overview", response_model=DashboardOverview)
async def get_dashboard_overview(service: AnalyticsServiceDep) -> DashboardOverview:
    return await service.get_dashboard_overview()


@router.delete("/cache", response_model=CacheInvalidationResponse)
async def invalidate_cache(service: AnalyticsServiceDep) -> CacheInvalidationResponse:
    """Drop every cached analytics report."""
    cleared = await service.invalidate_cache()
    return CacheInvalidationResponse(cleared=cleared)
