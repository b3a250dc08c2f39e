"""
Database module for persistence.

Provides SQLAlchemy models, session management and the repository
pattern for interview data persistence.
"""

from recruitment_interviews.db.models import (
    ApplicationModel,
    Base,
    InterviewModel,
    InterviewQuestionModel,
    JobModel,
)
from recruitment_interviews.db.repository import (
    ApplicationRepository,
    InterviewQuestionRepository,
    InterviewRepository,
)
from recruitment_interviews.db.session import (
    create_engine,
    create_session_factory,
    init_models,
    transaction,
)

__all__ = [
    "Base",
    "ApplicationModel",
    "InterviewModel",
    "InterviewQuestionModel",
    "JobModel",
    "ApplicationRepository",
    "InterviewQuestionRepository",
    "InterviewRepository",
    "create_engine",
    "create_session_factory",
    "init_models",
    "transaction",
]
