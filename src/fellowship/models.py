"""
Model Registry

Importing this module registers every table on ``Base.metadata``. Alembic's
env.py, ``Database.create_all`` callers and the test suite import it.
"""

from fellowship.core.database import Base
from fellowship.modules.applications.models import Application, ApplicationStatus
from fellowship.modules.cohorts.models import Cohort, CohortMembership, CohortStatus
from fellowship.modules.content.models import Content, ContentType
from fellowship.modules.institutions.models import Institution, InstitutionStatus
from fellowship.modules.messaging.models import (
    Conversation,
    ConversationParticipant,
    ConversationType,
    Message,
)
from fellowship.modules.sessions.models import AttendeeStatus, CohortSession, SessionStatus
from fellowship.modules.users.models import User, UserRole

__all__ = [
    "Base",
    "Application",
    "ApplicationStatus",
    "AttendeeStatus",
    "Cohort",
    "CohortMembership",
    "CohortSession",
    "CohortStatus",
    "Content",
    "ContentType",
    "Conversation",
    "ConversationParticipant",
    "ConversationType",
    "Institution",
    "InstitutionStatus",
    "Message",
    "SessionStatus",
    "User",
    "UserRole",
]
