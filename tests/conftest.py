from collections import Counter
from types import MappingProxyType

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from score_analytics.core.subjects import LevelThresholds, SubjectRegistry
from score_analytics.dependencies.database import Base
from score_analytics.models import Student, SubjectScore
from score_analytics.services.cache_service import CacheBackend, CacheService, InMemoryCacheBackend
from score_analytics.services.filter_compiler import PredicateSet
from score_analytics.services.score_data_source import ScoreDataSource, ScoreRecord

TEST_REGISTRY = SubjectRegistry(
    subjects=("toan", "vat_li", "hoa_hoc"),
    display_names=MappingProxyType({"toan": "Math", "vat_li": "Physics", "hoa_hoc": "Chemistry"}),
    thresholds=LevelThresholds(),
    combinations=MappingProxyType({"A": ("toan", "vat_li", "hoa_hoc")}),
    foreign_language_codes=MappingProxyType({"N1": "English", "N2": "Russian"}),
)

# subject -> list of (registration number, score, language code)
SAMPLE_SCORES = {
    "toan": [("S001", 9.0, "N1"), ("S002", 7.0, "N1"), ("S003", 5.0, "N2"), ("S004", 3.0, "N2")],
    "vat_li": [("S001", 8.0, "N1"), ("S002", 8.0, "N1"), ("S003", 8.0, "N2"), ("S004", 6.0, "N2")],
    "hoa_hoc": [
        ("S001", 3.0, "N1"),
        ("S002", 4.0, "N1"),
        ("S003", 5.0, "N2"),
        ("S004", 6.0, "N2"),
        ("S005", 10.0, None),
    ],
}


def make_records(scores: dict[str, list[tuple[str, float, str | None]]] = SAMPLE_SCORES) -> list[ScoreRecord]:
    return [
        ScoreRecord(subject=subject, value=value, student_id=number, foreign_language_code=code)
        for subject, rows in scores.items()
        for number, value, code in rows
    ]


class InMemoryScoreDataSource(ScoreDataSource):
    """ScoreDataSource over a list of records; counts calls per method."""

    name = "memory"

    def __init__(self, records: list[ScoreRecord]):
        self.records = list(records)
        self.calls: Counter = Counter()

    async def fetch(self, predicates: PredicateSet) -> list[ScoreRecord]:
        self.calls["fetch"] += 1
        return [record for record in self.records if predicates.matches(record)]

    async def count(self, predicates: PredicateSet) -> int:
        self.calls["count"] += 1
        return sum(1 for record in self.records if predicates.matches(record))

    async def fetch_top_n(self, subject: str, n: int) -> list[tuple[str, float]]:
        self.calls["fetch_top_n"] += 1
        rows = [record for record in self.records if record.subject == subject]
        rows = sorted(rows, key=lambda record: record.value, reverse=True)
        return [(record.student_id, record.value) for record in rows[:n]]

    async def count_students(self) -> int:
        return len({record.student_id for record in self.records})

    async def count_scores(self) -> int:
        return len(self.records)

    async def all_scores(self) -> list[float]:
        return [record.value for record in self.records]


class FailingCacheBackend(CacheBackend):
    """Cache backend whose every operation fails, as during an outage."""

    name = "broken"

    async def get(self, key):
        raise ConnectionError("cache unavailable")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("cache unavailable")

    async def delete(self, key):
        raise ConnectionError("cache unavailable")

    async def clear_prefix(self, prefix):
        raise ConnectionError("cache unavailable")

    async def clear_all(self):
        raise ConnectionError("cache unavailable")


@pytest.fixture
def registry() -> SubjectRegistry:
    return TEST_REGISTRY


@pytest.fixture
def data_source() -> InMemoryScoreDataSource:
    return InMemoryScoreDataSource(make_records())


@pytest.fixture
def cache() -> CacheService:
    return CacheService(InMemoryCacheBackend(max_size=100, ttl=300))


@pytest.fixture
async def session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessionmaker = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with sessionmaker() as db_session:
        yield db_session

    await engine.dispose()


@pytest.fixture
async def seeded_session(session):
    """Session with SAMPLE_SCORES stored, students inserted in registration number order."""
    students: dict[str, Student] = {}
    for rows in SAMPLE_SCORES.values():
        for number, _, code in rows:
            if number not in students:
                students[number] = Student(registration_number=number, foreign_language_code=code)
    for number in sorted(students):
        session.add(students[number])
    await session.flush()

    for subject, rows in SAMPLE_SCORES.items():
        for number, value, _ in rows:
            session.add(SubjectScore(student_id=students[number].id, subject=subject, score=value))
    await session.commit()
    session.expunge_all()
    return session
