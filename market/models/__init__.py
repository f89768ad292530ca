from market.models.base import Base  # noqa: F401

from market.models.user import User  # noqa: F401
from market.models.web_session import WebSession  # noqa: F401
from market.models.listing import Listing  # noqa: F401
from market.models.review import Review  # noqa: F401
from market.models.outbox import OutboxEvent  # noqa: F401
from market.models.audit_log import AuditLog  # noqa: F401
