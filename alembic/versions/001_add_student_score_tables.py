"""Add student and subject score tables

Revision ID: 001
Revises:
Create Date: 2025-06-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create students table
    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('registration_number', sa.String(length=20), nullable=False),
        sa.Column('foreign_language_code', sa.String(length=4), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('registration_number')
    )
    op.create_index(op.f('ix_students_registration_number'), 'students', ['registration_number'], unique=True)
    op.create_index(op.f('ix_students_foreign_language_code'), 'students', ['foreign_language_code'], unique=False)

    # Create subject_scores table
    op.create_table(
        'subject_scores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(length=20), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'subject', name='uq_student_subject')
    )
    op.create_index(op.f('ix_subject_scores_student_id'), 'subject_scores', ['student_id'], unique=False)
    op.create_index(op.f('ix_subject_scores_subject'), 'subject_scores', ['subject'], unique=False)
    op.create_index('ix_subject_scores_subject_score', 'subject_scores', ['subject', 'score'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_subject_scores_subject_score', table_name='subject_scores')
    op.drop_index(op.f('ix_subject_scores_subject'), table_name='subject_scores')
    op.drop_index(op.f('ix_subject_scores_student_id'), table_name='subject_scores')
    op.drop_table('subject_scores')
    op.drop_index(op.f('ix_students_foreign_language_code'), table_name='students')
    op.drop_index(op.f('ix_students_registration_number'), table_name='students')
    op.drop_table('students')
