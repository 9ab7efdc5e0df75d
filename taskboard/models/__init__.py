"""
Taskboard Backend — ORM Models
================================

What:  SQLAlchemy models for every table the service owns.
Why importing them here: Base.metadata only knows about imported models;
       Alembic autogenerate and the test schema setup both import this package.
"""

from taskboard.models.user import User
from taskboard.models.project import Project, ProjectMember, ProjectStatus
from taskboard.models.task import Task, TaskPriority, TaskStatus
from taskboard.models.invite import InviteStatus, ProjectInvite
from taskboard.models.notification import Notification, NotificationType

__all__ = [
    "User",
    "Project",
    "ProjectMember",
    "ProjectStatus",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "InviteStatus",
    "ProjectInvite",
    "Notification",
    "NotificationType",
]
