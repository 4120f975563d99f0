from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from score_analytics.dependencies.database import Base


class Student(Base):
    __tablename__ = "students"
    id = Column(Integer, primary_key=True)
    registration_number = Column(String(20), unique=True, nullable=False, index=True)
    foreign_language_code = Column(String(4), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    scores = relationship("SubjectScore", back_populates="student", cascade="all, delete-orphan")


class SubjectScore(Base):
    __tablename__ = "subject_scores"
    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    subject = Column(String(20), nullable=False, index=True)  # toan, ngu_van, ...
    score = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    student = relationship("Student", back_populates="scores")
    __table_args__ = (
        UniqueConstraint("student_id", "subject", name="uq_student_subject"),
        Index("ix_subject_scores_subject_score", "subject", "score"),
    )
