"""Service for parsing and importing the exam score CSV."""

import io
import logging
from dataclasses import dataclass
from typing import Any

import pandas as pd
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from score_analytics.core.subjects import DEFAULT_REGISTRY, MAX_SCORE, MIN_SCORE, SubjectRegistry
from score_analytics.models import Student, SubjectScore

logger = logging.getLogger(__name__)

REGISTRATION_NUMBER_COLUMN = "sbd"
FOREIGN_LANGUAGE_COLUMN = "ma_ngoai_ngu"


class ScoreImportParseError(Exception):
    """Raised when file parsing fails."""

    pass


class ScoreImportValidationError(Exception):
    """Raised when file validation fails."""

    pass


@dataclass
class ImportSummary:
    students: int = 0
    scores: int = 0
    skipped_values: int = 0
    skipped_rows: int = 0
    batches: int = 0


def parse_scores_file(file_content: bytes, filename: str) -> pd.DataFrame:
    """
    Parse the score CSV and return a DataFrame of strings.

    Args:
        file_content: Raw file content as bytes
        filename: Original filename for type detection

    Returns:
        DataFrame with lower-cased column names

    Raises:
        ScoreImportParseError: If the file cannot be parsed
        ScoreImportValidationError: If the registration number column is missing
    """
    if not filename.lower().endswith(".csv"):
        raise ScoreImportParseError(f"Unsupported file type. Expected .csv, got {filename}")

    try:
        # Read everything as str to preserve leading zeros in registration numbers
        df = pd.read_csv(io.BytesIO(file_content), dtype=str)
    except pd.errors.EmptyDataError:
        raise ScoreImportParseError("File is empty or contains no data")
    except Exception as e:
        raise ScoreImportParseError(f"Failed to parse file: {str(e)}")

    df = df.dropna(how="all")
    if df.empty:
        raise ScoreImportParseError("File is empty or contains no data")

    df.columns = df.columns.str.lower().str.strip()
    if REGISTRATION_NUMBER_COLUMN not in df.columns:
        raise ScoreImportValidationError(
            f"Missing required column: {REGISTRATION_NUMBER_COLUMN}. Found columns: {', '.join(sorted(df.columns))}"
        )
    return df


def _clean(value: Any) -> str | None:
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return None
    return text


def parse_student_row(row: pd.Series, registry: SubjectRegistry = DEFAULT_REGISTRY) -> dict[str, Any]:
    """
    Parse one CSV row.

    Returns:
        Dictionary with:
        - registration_number: str | None
        - foreign_language_code: str | None
        - scores: dict of subject -> score
        - skipped_values: number of non-blank values that were not valid scores
    """
    registration_number = _clean(row.get(REGISTRATION_NUMBER_COLUMN))
    foreign_language_code = _clean(row.get(FOREIGN_LANGUAGE_COLUMN))

    scores: dict[str, float] = {}
    skipped_values = 0
    for subject in registry.subjects:
        raw = _clean(row.get(subject))
        if raw is None:
            continue
        try:
            score = float(raw)
        except ValueError:
            skipped_values += 1
            continue
        if pd.isna(score) or not MIN_SCORE <= score <= MAX_SCORE:
            skipped_values += 1
            continue
        scores[subject] = score

    return {
        "registration_number": registration_number,
        "foreign_language_code": foreign_language_code,
        "scores": scores,
        "skipped_values": skipped_values,
    }


async def import_scores(
    session: AsyncSession,
    df: pd.DataFrame,
    batch_size: int = 1000,
    registry: SubjectRegistry = DEFAULT_REGISTRY,
) -> ImportSummary:
    """
    Insert students and their scores, one transaction per batch.

    Rows without a registration number, and registration numbers already in
    the database or earlier in the file, are skipped.
    """
    summary = ImportSummary()
    seen: set[str] = set()
    total_batches = (len(df) + batch_size - 1) // batch_size

    for batch_index, start in enumerate(range(0, len(df), batch_size), start=1):
        rows = [parse_student_row(row, registry) for _, row in df.iloc[start : start + batch_size].iterrows()]
        numbers = [row["registration_number"] for row in rows if row["registration_number"]]

        existing: set[str] = set()
        if numbers:
            result = await session.execute(
                select(Student.registration_number).where(Student.registration_number.in_(numbers))
            )
            existing = set(result.scalars().all())

        students = []
        for row in rows:
            number = row["registration_number"]
            if not number or number in existing or number in seen:
                summary.skipped_rows += 1
                continue
            seen.add(number)
            summary.skipped_values += row["skipped_values"]
            student = Student(registration_number=number, foreign_language_code=row["foreign_language_code"])
            student.scores = [SubjectScore(subject=subject, score=score) for subject, score in row["scores"].items()]
            students.append(student)
            summary.scores += len(student.scores)

        try:
            session.add_all(students)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.error(f"Failed to import batch {batch_index}/{total_batches}", exc_info=True)
            raise

        summary.students += len(students)
        summary.batches += 1
        logger.info(f"Imported batch {batch_index}/{total_batches} ({len(students)} students)")

    return summary
