from typing import Annotated

from fastapi import Depends

from score_analytics.dependencies.database import DBSessionDep
from score_analytics.services.analytics_service import AnalyticsService
from score_analytics.services.cache_service import cache_service
from score_analytics.services.score_data_source import SqlScoreDataSource
from score_analytics.services.student_service import StudentService


def get_analytics_service(session: DBSessionDep) -> AnalyticsService:
    return AnalyticsService(SqlScoreDataSource(session), cache_service)


def get_student_service(session: DBSessionDep) -> StudentService:
    return StudentService(session)


AnalyticsServiceDep = Annotated[AnalyticsService, Depends(get_analytics_service)]
StudentServiceDep = Annotated[StudentService, Depends(get_student_service)]
