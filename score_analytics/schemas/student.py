from datetime import datetime

from pydantic import BaseModel, Field

from score_analytics.core.subjects import MAX_SCORE, MIN_SCORE, ScoreLevel


class SubjectScoreResponse(BaseModel):
    """Schema for a single subject score of a student."""

    subject: str
    subject_display_name: str
    score: float
    level: ScoreLevel


class StudentResponse(BaseModel):
    """Schema for student response."""

    id: int
    registration_number: str
    foreign_language_code: str | None = None
    scores: list[SubjectScoreResponse] = []


class StudentSearchQuery(BaseModel):
    """Schema for student search parameters."""

    registration_number: str | None = Field(None, max_length=20, description="Partial registration number")
    foreign_language_code: str | None = Field(None, max_length=4)
    min_score: float | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    max_score: float | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)


class StudentSearchResponse(BaseModel):
    data: list[StudentResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class CombinationRankingItem(BaseModel):
    rank: int
    total_score: float
    student: StudentResponse


class OverviewStatistics(BaseModel):
    total_students: int
    total_scores: int
    average_score: float
    last_updated: datetime


class StudentListQuery(BaseModel):
    """Schema for listing students by the scores they hold."""

    subject: str | None = Field(None, max_length=20, description="Subject code the matching score must belong to")
    min_score: float | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    max_score: float | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    score_level: ScoreLevel | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class StudentPerformanceItem(BaseModel):
    subject: str
    subject_display_name: str
    score: float
    level: ScoreLevel


class StudentPerformanceResponse(BaseModel):
    registration_number: str
    data: list[StudentPerformanceItem]
    total: int
    page: int
    limit: int
    total_pages: int
