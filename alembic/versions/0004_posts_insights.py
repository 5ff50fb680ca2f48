from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0004_posts_insights"
down_revision = "0003_reviews_templates"
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
    ]


def upgrade():
    op.create_table(
        "post_templates",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("business_profile_id", sa.String(), sa.ForeignKey("business_profiles.id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("post_type", sa.String(length=20), nullable=False, server_default="UPDATE"),
        sa.Column("call_to_action", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
    )
    op.create_index("ix_post_templates_org_profile", "post_templates", ["organization_id", "business_profile_id"])

    op.create_table(
        "posts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("business_profile_id", sa.String(), sa.ForeignKey("business_profiles.id"), nullable=False),
        sa.Column("template_id", sa.String(), sa.ForeignKey("post_templates.id"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("post_type", sa.String(length=20), nullable=False, server_default="UPDATE"),
        sa.Column("call_to_action", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("media", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
    )
    op.create_index("ix_posts_profile_status", "posts", ["business_profile_id", "status"])

    op.create_table(
        "business_insights",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("business_profile_id", sa.String(), sa.ForeignKey("business_profiles.id"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("total_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("search_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("maps_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("website_clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("phone_call_clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("direction_requests", sa.Integer(), nullable=False, server_default="0"),
        *_audit_columns(),
        sa.UniqueConstraint("business_profile_id", "day", name="uq_business_insight_day"),
    )


def downgrade():
    op.drop_table("business_insights")

    op.drop_index("ix_posts_profile_status", table_name="posts")
    op.drop_table("posts")

    op.drop_index("ix_post_templates_org_profile", table_name="post_templates")
    op.drop_table("post_templates")
