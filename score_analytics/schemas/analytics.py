import enum
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from score_analytics.core.subjects import MAX_SCORE, MIN_SCORE


class AggregationType(str, enum.Enum):
    COUNT = "count"
    PERCENTAGE = "percentage"
    BOTH = "both"


class SortBy(str, enum.Enum):
    SUBJECT_NAME = "subject_name"
    TOTAL_STUDENTS = "total_students"
    EXCELLENT_COUNT = "excellent_count"
    AVERAGE_SCORE = "average_score"


class SortOrder(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


class ReportFormat(str, enum.Enum):
    TABLE = "table"
    CHART = "chart"
    EXPORT = "export"


class ReportFilter(BaseModel):
    """Filter for the advanced subject report."""

    subjects: list[str] | None = Field(None, description="Subjects to analyse (empty = all subjects)")
    foreign_language_codes: list[str] | None = Field(None, description="Foreign language codes, e.g. N1")
    min_score: float | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    max_score: float | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    score_levels: list[str] | None = Field(None, description="excellent, good, average, poor")
    min_student_count: int | None = Field(None, ge=1, description="Drop subjects with fewer scores")
    include_statistics: bool = False
    include_comparison: bool = False
    aggregation_type: AggregationType = AggregationType.BOTH
    sort_by: SortBy = SortBy.SUBJECT_NAME
    sort_order: SortOrder = SortOrder.ASC
    format: ReportFormat = ReportFormat.TABLE

    @field_validator("subjects", "foreign_language_codes")
    @classmethod
    def strip_values(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [item.strip() for item in value if item and item.strip()]

    @field_validator("score_levels")
    @classmethod
    def normalize_levels(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [item.strip().lower() for item in value if item and item.strip()]

    @model_validator(mode="after")
    def check_score_range(self) -> "ReportFilter":
        if self.min_score is not None and self.max_score is not None and self.min_score > self.max_score:
            raise ValueError("min_score must be less than or equal to max_score")
        return self


class BasicReportFilter(BaseModel):
    """Filter for the basic (backward compatible) subject report."""

    subjects: list[str] | None = None
    format: ReportFormat = ReportFormat.TABLE


class LevelPercentages(BaseModel):
    excellent: float = 0.0
    good: float = 0.0
    average: float = 0.0
    poor: float = 0.0


class LevelCounts(BaseModel):
    excellent: int = 0
    good: int = 0
    average: int = 0
    poor: int = 0
    total: int = 0


class LevelBucketStat(LevelCounts):
    """Score counts per level, with optional percentages."""

    percentages: LevelPercentages | None = None


class DescriptiveStats(BaseModel):
    mean: float = 0.0
    median: float = 0.0
    mode: float = 0.0
    variance: float = 0.0
    standard_deviation: float = 0.0
    min: float = 0.0
    max: float = 0.0


class ComparisonResult(BaseModel):
    """A subject's filtered average against its unfiltered baseline, plus its rank among subjects."""

    subject_average: float
    overall_average: float
    difference: float
    percentage_difference: float
    rank_position: int
    total_subjects: int
    percentile: int


class SubjectReport(BaseModel):
    subject: str
    subject_display_name: str
    statistics: LevelBucketStat
    statistical_analysis: DescriptiveStats | None = None
    comparison: ComparisonResult | None = None
    average_score: float = 0.0
    top_performers: list[str] | None = None
    # Raw values kept for pooled statistics; never serialized
    scores: list[float] = Field(default_factory=list, exclude=True)


class ChartDataItem(BaseModel):
    subject: str
    excellent: int
    good: int
    average: int
    poor: int
    total: int
    average_score: float
    percentages: LevelPercentages | None = None


class ReportSummary(BaseModel):
    total_students: int
    total_scores: int
    average_score: float
    filtered_students: int
    applied_filters: list[str]
    report_generated_at: datetime
    processing_time_ms: int


class ReportMetadata(BaseModel):
    cache_hit: bool = False
    cache_store: str | None = None
    version: str = "v2-advanced"
    processing_time_ms: int = 0
    cache_ttl: int | None = None
    filters_applied: int = 0
    data_source: str = "postgresql"


class AdvancedReport(BaseModel):
    subjects: list[SubjectReport]
    summary: ReportSummary
    chart_data: list[ChartDataItem]
    overall_statistics: DescriptiveStats | None = None
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)


class BasicSubjectStatistics(BaseModel):
    subject: str
    subject_display_name: str
    statistics: LevelCounts
    percentages: LevelPercentages


class BasicSummary(BaseModel):
    total_students: int
    total_scores: int
    average_score: float
    report_generated_at: datetime


class BasicReport(BaseModel):
    subjects: list[BasicSubjectStatistics]
    summary: BasicSummary
    chart_data: list[ChartDataItem]


class TopPerformer(BaseModel):
    registration_number: str
    score: float
    subject: str
    subject_display_name: str


class DashboardOverview(BaseModel):
    summary: BasicSummary
    overall_statistics: LevelBucketStat


class FilterValidationResponse(BaseModel):
    valid: bool
    filter: ReportFilter
    applied_filters: list[str]
    subjects_to_analyze: list[str]
    warnings: list[str]


class CacheInvalidationResponse(BaseModel):
    cleared: int
