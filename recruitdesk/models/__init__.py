"""
RecruitDesk – SQLAlchemy ORM models package.

Imports all model classes so the app can discover them through a single
``from recruitdesk.models import *`` import.
"""

from recruitdesk.models.user import User                                   # noqa: F401
from recruitdesk.models.notification import Notification                   # noqa: F401
from recruitdesk.models.support_ticket import SupportTicket, TicketMessage # noqa: F401
