"""Initial PsicoMapa schema with tenant RLS policies.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-03-02 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Tenant-scoped tables carrying an org_id column.
RLS_TABLES = [
    "users_orgs",
    "departments",
    "assessments",
    "assessment_participants",
    "subscriptions",
    "billing_customers",
    "payment_history",
    "generated_reports",
    "action_plans",
]

# org_id IS NULL rows are shared (global templates, system events).
RLS_SHARED_TABLES = [
    "questionnaires",
    "webhook_events",
]


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _org_fk(nullable: bool = False) -> sa.Column:
    return sa.Column(
        "org_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=nullable,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Tenants and identity
    # -----------------------------------------------------------------------

    # organizations (NOT RLS-scoped)
    op.create_table(
        "organizations",
        _uuid_pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("industry", sa.Text(), nullable=True),
        sa.Column("size", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("settings", postgresql.JSONB(), nullable=False, server_default="{}"),
        *_timestamps(),
    )
    op.create_index("idx_organizations_name", "organizations", ["name"])

    # users (NOT RLS-scoped)
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "users_orgs",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="membro"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.CheckConstraint("role IN ('responsavel_empresa', 'membro')", name="ck_users_orgs_role"),
    )

    op.create_table(
        "departments",
        _uuid_pk(),
        _org_fk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("parent_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_departments_org", "departments", ["org_id"])

    op.create_table(
        "department_members",
        _uuid_pk(),
        sa.Column("department_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("departments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("department_id", "user_id"),
    )

    # -----------------------------------------------------------------------
    # 2. Questionnaires and assessments
    # -----------------------------------------------------------------------

    op.create_table(
        "questionnaires",
        _uuid_pk(),
        _org_fk(nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("introduction_text", sa.Text(), nullable=True),
        sa.Column("lgpd_consent_text", sa.Text(), nullable=True),
        sa.Column("questionnaire_type", sa.Text(), nullable=False, server_default="custom"),
        sa.Column("status", sa.Text(), nullable=False, server_default="draft"),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("template_based_on", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_questionnaires_org", "questionnaires", ["org_id"])

    op.create_table(
        "questions",
        _uuid_pk(),
        sa.Column("questionnaire_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("questionnaires.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("question_type", sa.Text(), nullable=False, server_default="likert_scale"),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("allow_skip", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("risk_inverted", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("min_value", sa.Integer(), nullable=True),
        sa.Column("max_value", sa.Integer(), nullable=True),
        sa.Column("options", postgresql.JSONB(), nullable=True),
        sa.Column("scale_labels", postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_questions_questionnaire_order", "questions", ["questionnaire_id", "order_index"])

    op.create_table(
        "assessments",
        _uuid_pk(),
        _org_fk(),
        sa.Column("questionnaire_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("questionnaires.id"), nullable=False),
        sa.Column("department_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="draft"),
        sa.Column("anonymous", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('draft', 'active', 'completed', 'cancelled')", name="ck_assessments_status"),
        sa.CheckConstraint("end_date >= start_date", name="ck_assessments_dates"),
    )
    op.create_index("idx_assessments_org_status", "assessments", ["org_id", "status"])
    op.execute("CREATE INDEX idx_assessments_live ON assessments (org_id) WHERE deleted_at IS NULL")

    op.create_table(
        "assessment_participants",
        _uuid_pk(),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        _org_fk(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("department", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("assessment_id", "email"),
    )
    op.create_index("idx_participants_status", "assessment_participants", ["status", "created_at"])

    # responses (NOT RLS-scoped; anonymous submissions reach it without an org context)
    op.create_table(
        "responses",
        _uuid_pk(),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("anonymous_id", sa.Text(), nullable=False),
        sa.Column("department_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True),
        sa.Column("value", sa.Integer(), nullable=True),
        sa.Column("response_text", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_responses_assessment", "responses", ["assessment_id", "question_id"])
    op.create_index("idx_responses_anonymous", "responses", ["assessment_id", "anonymous_id"])

    # -----------------------------------------------------------------------
    # 3. Billing
    # -----------------------------------------------------------------------

    op.create_table(
        "subscriptions",
        _uuid_pk(),
        _org_fk(),
        sa.Column("plan", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True, unique=True),
        sa.Column("stripe_price_id", sa.Text(), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("plan IN ('base', 'intermediario', 'avancado')", name="ck_subscriptions_plan"),
    )
    op.create_index("idx_subscriptions_org", "subscriptions", ["org_id", "created_at"])

    op.create_table(
        "billing_customers",
        _uuid_pk(),
        sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "payment_history",
        _uuid_pk(),
        _org_fk(),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default="brl"),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("failure_message", sa.Text(), nullable=True),
        sa.Column("stripe_invoice_id", sa.Text(), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.Text(), nullable=True),
        sa.Column("stripe_charge_id", sa.Text(), nullable=True),
        sa.Column("invoice_pdf_url", sa.Text(), nullable=True),
        sa.Column("receipt_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_payment_history_org", "payment_history", ["org_id", "created_at"])
    op.create_index("idx_payment_history_invoice", "payment_history", ["stripe_invoice_id"])

    # -----------------------------------------------------------------------
    # 4. Webhook bookkeeping
    # -----------------------------------------------------------------------

    op.create_table(
        "webhook_events",
        _uuid_pk(),
        _org_fk(nullable=True),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_webhook_events_retry", "webhook_events", ["status", "attempts", "created_at"])
    op.create_index("idx_webhook_events_type", "webhook_events", ["event_type"])

    # stripe_webhook_events (NOT RLS-scoped; Stripe events arrive before the tenant is known)
    op.create_table(
        "stripe_webhook_events",
        _uuid_pk(),
        sa.Column("stripe_event_id", sa.Text(), nullable=False, unique=True),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # -----------------------------------------------------------------------
    # 5. Reports and action plans
    # -----------------------------------------------------------------------

    op.create_table(
        "generated_reports",
        _uuid_pk(),
        _org_fk(),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("report_type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="generating"),
        sa.Column("content", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("generated_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_generated_reports_org", "generated_reports", ["org_id", "created_at"])

    op.create_table(
        "action_plans",
        _uuid_pk(),
        _org_fk(),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assessments.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("responsible", sa.Text(), nullable=True),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("risk_block", sa.Text(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_action_plans_org", "action_plans", ["org_id", "assessment_id"])

    # -----------------------------------------------------------------------
    # 6. Row Level Security (RLS) policies
    # -----------------------------------------------------------------------

    # Not FORCEd: the application role owns the tables and scopes queries by
    # org_id itself. Reporting roles without ownership see one tenant at a time.
    for table in RLS_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"""
            CREATE POLICY org_isolation ON {table}
            USING (org_id = current_setting('app.current_org_id', true)::uuid)
        """)

    for table in RLS_SHARED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"""
            CREATE POLICY org_isolation ON {table}
            USING (org_id IS NULL OR org_id = current_setting('app.current_org_id', true)::uuid)
        """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in reversed(RLS_TABLES + RLS_SHARED_TABLES):
        op.execute(f"DROP POLICY IF EXISTS org_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    # Reverse dependency order
    op.drop_table("action_plans")
    op.drop_table("generated_reports")
    op.drop_table("stripe_webhook_events")
    op.drop_table("webhook_events")
    op.drop_table("payment_history")
    op.drop_table("billing_customers")
    op.drop_table("subscriptions")
    op.drop_table("responses")
    op.drop_table("assessment_participants")
    op.drop_table("assessments")
    op.drop_table("questions")
    op.drop_table("questionnaires")
    op.drop_table("department_members")
    op.drop_table("departments")
    op.drop_table("users_orgs")
    op.drop_table("users")
    op.drop_table("organizations")
