from fastapi import APIRouter, HTTPException, Query, status

from score_analytics.core.subjects import ScoreLevel
from score_analytics.dependencies.services import StudentServiceDep
from score_analytics.schemas.student import (
    CombinationRankingItem,
    OverviewStatistics,
    StudentListQuery,
    StudentPerformanceResponse,
    StudentResponse,
    StudentSearchQuery,
    StudentSearchResponse,
)
from score_analytics.services.student_service import StudentNotFoundError

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.get("", response_model=StudentSearchResponse)
async def list_students(
    service: StudentServiceDep,
    subject: str | None = Query(None, max_length=20),
    min_score: float | None = Query(None, ge=0, le=10),
    max_score: float | None = Query(None, ge=0, le=10),
    score_level: ScoreLevel | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> StudentSearchResponse:
    """List students holding a score that matches the subject, range and level filters."""
    query = StudentListQuery(
        subject=subject,
        min_score=min_score,
        max_score=max_score,
        score_level=score_level,
        page=page,
        limit=limit,
    )
    return await service.list_students(query)


@router.get("/search", response_model=StudentSearchResponse)
async def search_students(
    service: StudentServiceDep,
    registration_number: str | None = Query(None, max_length=20, description="Partial registration number"),
    foreign_language_code: str | None = Query(None, max_length=4),
    min_score: float | None = Query(None, ge=0, le=10),
    max_score: float | None = Query(None, ge=0, le=10),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> StudentSearchResponse:
    """Search students with pagination."""
    query = StudentSearchQuery(
        registration_number=registration_number,
        foreign_language_code=foreign_language_code,
        min_score=min_score,
        max_score=max_score,
        page=page,
        limit=limit,
    )
    return await service.search(query)


@router.get("/top/{combination}", response_model=list[CombinationRankingItem])
async def get_top_students_by_combination(
    combination: str,
    service: StudentServiceDep,
    limit: int = Query(10, ge=1, le=100),
) -> list[CombinationRankingItem]:
    """Top students by total score over a subject combination (A, A1, B, C, D)."""
    try:
        return await service.get_top_by_combination(combination, limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/statistics/overview", response_model=OverviewStatistics)
async def get_overview_statistics(service: StudentServiceDep) -> OverviewStatistics:
    return await service.get_overview_statistics()


@router.get("/{registration_number}", response_model=StudentResponse)
async def get_student(registration_number: str, service: StudentServiceDep) -> StudentResponse:
    """Get a student and their scores by registration number."""
    try:
        return await service.get_by_registration_number(registration_number)
    except StudentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{registration_number}/performance", response_model=StudentPerformanceResponse)
async def get_student_performance(
    registration_number: str,
    service: StudentServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> StudentPerformanceResponse:
    """A student's scores, best first."""
    try:
        return await service.get_performance(registration_number, page, limit)
    except StudentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
