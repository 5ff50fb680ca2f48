from alembic import op
import sqlalchemy as sa

revision = "0003_reviews_templates"
down_revision = "0002_business_profiles"
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
        "response_templates",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("business_profile_id", sa.String(), sa.ForeignKey("business_profiles.id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("sentiment", sa.String(length=30), nullable=False, server_default="ALL"),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
    )
    op.create_index("ix_response_templates_org_profile", "response_templates", ["organization_id", "business_profile_id"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("business_profile_id", sa.String(), sa.ForeignKey("business_profiles.id"), nullable=False),
        sa.Column("external_review_id", sa.String(length=400), nullable=False),
        sa.Column("reviewer_name", sa.String(length=200), nullable=False),
        sa.Column("reviewer_photo_url", sa.String(length=1000), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="NEW"),
        sa.Column("sentiment", sa.String(length=30), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
        sa.UniqueConstraint("business_profile_id", "external_review_id", name="uq_review_external_id"),
    )
    op.create_index("ix_reviews_profile_published", "reviews", ["business_profile_id", "published_at"])

    op.create_table(
        "review_responses",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("review_id", sa.String(), sa.ForeignKey("reviews.id"), nullable=False, unique=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("template_id", sa.String(), sa.ForeignKey("response_templates.id"), nullable=True),
        *_audit_columns(),
    )


def downgrade():
    op.drop_table("review_responses")

    op.drop_index("ix_reviews_profile_published", table_name="reviews")
    op.drop_table("reviews")

    op.drop_index("ix_response_templates_org_profile", table_name="response_templates")
    op.drop_table("response_templates")
