"""Translate report filters into predicate sets and human readable descriptions."""

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from score_analytics.core.subjects import ScoreLevel, SubjectRegistry
from score_analytics.schemas.analytics import ReportFilter

if TYPE_CHECKING:
    from score_analytics.services.score_data_source import ScoreRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreRange:
    """Half-open score range: ``low`` inclusive, ``high`` exclusive, None = unbounded."""

    low: float | None = None
    high: float | None = None

    def contains(self, value: float) -> bool:
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value >= self.high:
            return False
        return True


@dataclass(frozen=True)
class PredicateSet:
    """
    Conjunction of row-level predicates over score records.

    ``subjects`` None means no subject restriction; an empty tuple matches nothing.
    ``level_ranges`` are OR-ed together before being AND-ed with the rest.
    """

    subjects: tuple[str, ...] | None = None
    min_score: float | None = None
    max_score: float | None = None
    foreign_language_codes: tuple[str, ...] = ()
    level_ranges: tuple[ScoreRange, ...] = ()

    def for_subject(self, subject: str) -> "PredicateSet":
        return replace(self, subjects=(subject,))

    def matches(self, record: "ScoreRecord") -> bool:
        if self.subjects is not None and record.subject not in self.subjects:
            return False
        if self.min_score is not None and record.value < self.min_score:
            return False
        if self.max_score is not None and record.value > self.max_score:
            return False
        if self.foreign_language_codes and record.foreign_language_code not in self.foreign_language_codes:
            return False
        if self.level_ranges and not any(r.contains(record.value) for r in self.level_ranges):
            return False
        return True


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def known_levels(levels: list[str] | None) -> list[ScoreLevel]:
    """Map level names to ScoreLevel, silently dropping unsupported entries."""
    result: list[ScoreLevel] = []
    for name in levels or []:
        try:
            level = ScoreLevel(name.lower())
        except ValueError:
            logger.debug(f"Ignoring unsupported score level: {name}")
            continue
        if level not in result:
            result.append(level)
    return result


def resolve_subjects(report_filter: ReportFilter, registry: SubjectRegistry) -> list[str]:
    """Requested subjects that exist in the registry, or every registry subject if none requested."""
    if not report_filter.subjects:
        return list(registry.subjects)
    return [subject for subject in _unique(report_filter.subjects) if subject in registry]


def compile_filter(report_filter: ReportFilter, registry: SubjectRegistry) -> PredicateSet:
    """
    Build the predicate set for a report filter.

    ``min_student_count`` is not a row predicate; it is applied to finished
    subject reports.
    """
    level_ranges = tuple(
        ScoreRange(*registry.thresholds.range_for(level)) for level in known_levels(report_filter.score_levels)
    )
    return PredicateSet(
        subjects=tuple(resolve_subjects(report_filter, registry)),
        min_score=report_filter.min_score,
        max_score=report_filter.max_score,
        foreign_language_codes=tuple(_unique(report_filter.foreign_language_codes or [])),
        level_ranges=level_ranges,
    )


def _format_number(value: float) -> str:
    return f"{value:g}"


def describe_filter(report_filter: ReportFilter) -> list[str]:
    """
    One string per populated filter field, always in the same field order.

    List values keep request order with repeats removed.
    """
    filters: list[str] = []
    if report_filter.subjects:
        filters.append(f"subjects: {', '.join(_unique(report_filter.subjects))}")
    if report_filter.foreign_language_codes:
        filters.append(f"languages: {', '.join(_unique(report_filter.foreign_language_codes))}")
    if report_filter.min_score is not None:
        filters.append(f"minScore: {_format_number(report_filter.min_score)}")
    if report_filter.max_score is not None:
        filters.append(f"maxScore: {_format_number(report_filter.max_score)}")
    if report_filter.score_levels:
        filters.append(f"levels: {', '.join(_unique(report_filter.score_levels))}")
    if report_filter.min_student_count:
        filters.append(f"minStudents: {report_filter.min_student_count}")
    return filters


def filter_warnings(report_filter: ReportFilter, registry: SubjectRegistry) -> list[str]:
    """Describe filter entries that will be ignored."""
    warnings: list[str] = []
    unknown_subjects = [s for s in _unique(report_filter.subjects or []) if s not in registry]
    if unknown_subjects:
        warnings.append(f"Unknown subjects ignored: {', '.join(unknown_subjects)}")
    supported = {level.value for level in ScoreLevel}
    unknown_levels = [level for level in _unique(report_filter.score_levels or []) if level not in supported]
    if unknown_levels:
        warnings.append(f"Unsupported score levels ignored: {', '.join(unknown_levels)}")
    unknown_codes = [
        code
        for code in _unique(report_filter.foreign_language_codes or [])
        if code not in registry.foreign_language_codes
    ]
    if unknown_codes:
        warnings.append(f"Unknown foreign language codes (no scores will match): {', '.join(unknown_codes)}")
    if report_filter.subjects and not resolve_subjects(report_filter, registry):
        warnings.append("No known subjects selected; the report will be empty")
    return warnings
