# SQLModel definitions, imported here so Alembic sees the full metadata.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .user_org import UserOrg  # noqa: F401
from .department import Department, DepartmentMember  # noqa: F401
from .questionnaire import Questionnaire, Question  # noqa: F401
from .assessment import Assessment, AssessmentParticipant, Response  # noqa: F401
from .subscription import Subscription, BillingCustomer, PaymentHistory  # noqa: F401
from .event import WebhookEvent, StripeWebhookEvent  # noqa: F401
from .report import GeneratedReport, ActionPlan  # noqa: F401
