"""Subject registry and score level thresholds."""

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


class ScoreLevel(str, enum.Enum):
    EXCELLENT = "excellent"  # >= 8
    GOOD = "good"  # 6 <= score < 8
    AVERAGE = "average"  # 4 <= score < 6
    POOR = "poor"  # < 4


# Highest level first
SCORE_LEVELS_ORDER = (ScoreLevel.EXCELLENT, ScoreLevel.GOOD, ScoreLevel.AVERAGE, ScoreLevel.POOR)

MIN_SCORE = 0.0
MAX_SCORE = 10.0


@dataclass(frozen=True)
class LevelThresholds:
    """Lower bounds of the half-open level ranges; POOR is everything below ``average``."""

    excellent: float = 8.0
    good: float = 6.0
    average: float = 4.0

    def level_for(self, score: float) -> ScoreLevel:
        if score >= self.excellent:
            return ScoreLevel.EXCELLENT
        if score >= self.good:
            return ScoreLevel.GOOD
        if score >= self.average:
            return ScoreLevel.AVERAGE
        return ScoreLevel.POOR

    def range_for(self, level: ScoreLevel) -> tuple[float | None, float | None]:
        """Return ``(low, high)`` with ``low`` inclusive and ``high`` exclusive; None means unbounded."""
        if level == ScoreLevel.EXCELLENT:
            return self.excellent, None
        if level == ScoreLevel.GOOD:
            return self.good, self.excellent
        if level == ScoreLevel.AVERAGE:
            return self.average, self.good
        return None, self.average


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class SubjectRegistry:
    """Known subjects and the fixed tables consumed by the analytics engines."""

    subjects: tuple[str, ...]
    display_names: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    thresholds: LevelThresholds = field(default_factory=LevelThresholds)
    combinations: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: _frozen({}))
    foreign_language_codes: Mapping[str, str] = field(default_factory=lambda: _frozen({}))

    def __contains__(self, subject: object) -> bool:
        return subject in self.subjects

    def display_name(self, subject: str) -> str:
        return self.display_names.get(subject, subject)


DEFAULT_REGISTRY = SubjectRegistry(
    subjects=(
        "toan",
        "ngu_van",
        "ngoai_ngu",
        "vat_li",
        "hoa_hoc",
        "sinh_hoc",
        "lich_su",
        "dia_li",
        "gdcd",
    ),
    display_names=_frozen(
        {
            "toan": "Toán",
            "ngu_van": "Ngữ văn",
            "ngoai_ngu": "Ngoại ngữ",
            "vat_li": "Vật lý",
            "hoa_hoc": "Hóa học",
            "sinh_hoc": "Sinh học",
            "lich_su": "Lịch sử",
            "dia_li": "Địa lý",
            "gdcd": "Giáo dục công dân",
        }
    ),
    thresholds=LevelThresholds(),
    combinations=_frozen(
        {
            "A": ("toan", "vat_li", "hoa_hoc"),
            "A1": ("toan", "vat_li", "ngoai_ngu"),
            "B": ("toan", "hoa_hoc", "sinh_hoc"),
            "C": ("ngu_van", "lich_su", "dia_li"),
            "D": ("toan", "ngu_van", "ngoai_ngu"),
        }
    ),
    foreign_language_codes=_frozen(
        {
            "N1": "Tiếng Anh",
            "N2": "Tiếng Nga",
            "N3": "Tiếng Pháp",
            "N4": "Tiếng Trung",
            "N5": "Tiếng Đức",
            "N6": "Tiếng Nhật",
        }
    ),
)
