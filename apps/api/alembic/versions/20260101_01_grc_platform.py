"""GRC platform schema: accounts, merchants, certificates, receipts and campaigns.

Revision ID: 20260101_01
Revises:
Create Date: 2026-01-01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20260101_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID = postgresql.UUID(as_uuid=True)

grc_status = sa.Enum("pending", "active", "completed", "expired", name="grc_status")
payment_method = sa.Enum("bank_account", "zelle", "business_check", name="payment_method")
payment_status = sa.Enum("pending", "confirmed", "failed", name="payment_status")
qualification_status = sa.Enum(
    "in_progress",
    "receipts_complete",
    "qualified",
    "pending_review",
    "forfeited",
    name="qualification_status",
)
receipt_status = sa.Enum("pending", "approved", "rejected", name="receipt_status")
campaign_status = sa.Enum("draft", "sending", "sent", "failed", name="campaign_status")
campaign_recipient_type = sa.Enum("individual", "lists", name="campaign_recipient_type")
campaign_recipient_status = sa.Enum("pending", "sent", "failed", "bounced", name="campaign_recipient_status")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    role_check = sa.CheckConstraint("role IN ('member','merchant','admin')", name="ck_users_role_valid")

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="member"),
        sa.Column("notification_prefs", sa.JSON(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        role_check,
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "email_preferences",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("marketing_emails", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("transactional_emails", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("unsubscribed_all", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "magic_link_tokens",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("callback_url", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_magic_link_tokens_email", "magic_link_tokens", ["email"])
    op.create_index("ix_magic_link_tokens_token_hash", "magic_link_tokens", ["token_hash"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        _created_at(),
    )

    op.create_table(
        "merchants",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("business_name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=True),
        sa.Column("category_id", UUID, sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("street_address", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=2), nullable=True),
        sa.Column("zip_code", sa.String(length=10), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("website", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("about_story", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("vimeo_url", sa.Text(), nullable=True),
        sa.Column("instagram_url", sa.String(length=255), nullable=True),
        sa.Column("facebook_url", sa.String(length=255), nullable=True),
        sa.Column("tiktok_url", sa.String(length=255), nullable=True),
        sa.Column("hours", sa.JSON(), nullable=True),
        sa.Column("photos", sa.JSON(), nullable=True),
        sa.Column("services", sa.JSON(), nullable=True),
        sa.Column("google_place_id", sa.String(length=255), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
    )
    op.create_index("ix_merchants_user_id", "merchants", ["user_id"])
    op.create_index("ix_merchants_slug", "merchants", ["slug"], unique=True)

    op.create_table(
        "merchant_bank_accounts",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("bank_name", sa.String(length=255), nullable=True),
        sa.Column("routing_number", sa.String(length=32), nullable=False),
        sa.Column("account_number", sa.String(length=64), nullable=False),
        sa.Column("account_type", sa.String(length=20), nullable=False),
        sa.Column("account_holder_name", sa.String(length=255), nullable=False),
        _created_at(),
    )

    op.create_table(
        "merchant_invites",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("business_name", sa.String(length=255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_by_user_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
    )
    op.create_index("ix_merchant_invites_token_hash", "merchant_invites", ["token_hash"], unique=True)

    op.create_table(
        "members",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=50), nullable=True),
        sa.Column("zip", sa.String(length=10), nullable=True),
        sa.Column("home_city", sa.String(length=100), nullable=True),
        _created_at(),
    )

    op.create_table(
        "grc_purchases",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("denomination", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_cost", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("payment_status", payment_status, nullable=False, server_default="pending"),
        sa.Column("is_trial", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("zelle_account_name", sa.String(length=255), nullable=True),
        sa.Column("payment_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_confirmed_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
    )
    op.create_index("ix_grc_purchases_merchant_id", "grc_purchases", ["merchant_id"])

    op.create_table(
        "grcs",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", UUID, sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("denomination", sa.Integer(), nullable=False),
        sa.Column("cost_per_cert", sa.Numeric(10, 2), nullable=False),
        sa.Column("grocery_store", sa.String(length=255), nullable=True),
        sa.Column("grocery_store_place_id", sa.String(length=255), nullable=True),
        sa.Column("status", grc_status, nullable=False, server_default="pending"),
        sa.Column("months_remaining", sa.Integer(), nullable=False),
        sa.Column("start_month", sa.Integer(), nullable=True),
        sa.Column("start_year", sa.Integer(), nullable=True),
        sa.Column("recipient_email", sa.String(length=255), nullable=True),
        sa.Column("recipient_name", sa.String(length=255), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_grcs_merchant_id", "grcs", ["merchant_id"])
    op.create_index("ix_grcs_member_id", "grcs", ["member_id"])
    op.create_index("ix_grcs_recipient_email", "grcs", ["recipient_email"])

    op.create_table(
        "member_grc_queue",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("member_id", UUID, sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("grc_id", UUID, sa.ForeignKey("grcs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.UniqueConstraint("member_id", "grc_id", name="uq_member_grc_queue_member_grc"),
    )
    op.create_index("ix_member_grc_queue_member_id", "member_grc_queue", ["member_id"])

    op.create_table(
        "monthly_qualifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("member_id", UUID, sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("grc_id", UUID, sa.ForeignKey("grcs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("approved_total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("survey_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", qualification_status, nullable=False, server_default="in_progress"),
        sa.Column("reward_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("gift_card_tracking_number", sa.String(length=255), nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "member_id",
            "grc_id",
            "month",
            "year",
            name="uq_monthly_qualifications_member_grc_period",
        ),
    )
    op.create_index("ix_monthly_qualifications_member_id", "monthly_qualifications", ["member_id"])
    op.create_index("ix_monthly_qualifications_grc_id", "monthly_qualifications", ["grc_id"])

    op.create_table(
        "receipts",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("member_id", UUID, sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("grc_id", UUID, sa.ForeignKey("grcs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("image_hash", sa.String(length=64), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("receipt_date", sa.Date(), nullable=True),
        sa.Column("extracted_store_name", sa.String(length=255), nullable=True),
        sa.Column("store_mismatch", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("date_mismatch", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("member_override", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("veryfi_document_id", sa.String(length=64), nullable=True),
        sa.Column("veryfi_response", sa.JSON(), nullable=True),
        sa.Column("status", receipt_status, nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejection_notes", sa.Text(), nullable=True),
        sa.Column("reupload_allowed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    op.create_index("ix_receipts_member_id", "receipts", ["member_id"])
    op.create_index("ix_receipts_grc_id", "receipts", ["grc_id"])
    op.create_index("ix_receipts_image_hash", "receipts", ["image_hash"])

    op.create_table(
        "surveys",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("questions", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )
    op.create_index("ix_surveys_merchant_id", "surveys", ["merchant_id"])

    op.create_table(
        "survey_responses",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("survey_id", UUID, sa.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", UUID, sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("grc_id", UUID, sa.ForeignKey("grcs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("month", sa.Integer(), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_survey_responses_survey_id", "survey_responses", ["survey_id"])
    op.create_index("ix_survey_responses_member_id", "survey_responses", ["member_id"])

    op.create_table(
        "reviews",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", UUID, sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("grc_id", UUID, sa.ForeignKey("grcs.id", ondelete="CASCADE"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("word_count", sa.Integer(), nullable=False),
        sa.Column("bonus_month_awarded", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
    )
    op.create_index("ix_reviews_merchant_id", "reviews", ["merchant_id"])
    op.create_index("ix_reviews_member_id", "reviews", ["member_id"])

    op.create_table(
        "email_campaigns",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("preview_text", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("recipient_type", campaign_recipient_type, nullable=False),
        sa.Column("recipient_lists", sa.JSON(), nullable=True),
        sa.Column("individual_recipient_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("recipient_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", campaign_status, nullable=False, server_default="draft"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_sent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unique_opens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unique_clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_bounces", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "campaign_recipients",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("campaign_id", UUID, sa.ForeignKey("email_campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("status", campaign_recipient_status, nullable=False, server_default="pending"),
        sa.Column("postmark_message_id", sa.String(length=64), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bounced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_campaign_recipients_campaign_id", "campaign_recipients", ["campaign_id"])
    op.create_index("ix_campaign_recipients_postmark_message_id", "campaign_recipients", ["postmark_message_id"])


def downgrade() -> None:
    op.drop_index("ix_campaign_recipients_postmark_message_id", table_name="campaign_recipients")
    op.drop_index("ix_campaign_recipients_campaign_id", table_name="campaign_recipients")
    op.drop_table("campaign_recipients")
    op.drop_table("email_campaigns")
    op.drop_index("ix_reviews_member_id", table_name="reviews")
    op.drop_index("ix_reviews_merchant_id", table_name="reviews")
    op.drop_table("reviews")
    op.drop_index("ix_survey_responses_member_id", table_name="survey_responses")
    op.drop_index("ix_survey_responses_survey_id", table_name="survey_responses")
    op.drop_table("survey_responses")
    op.drop_index("ix_surveys_merchant_id", table_name="surveys")
    op.drop_table("surveys")
    op.drop_index("ix_receipts_image_hash", table_name="receipts")
    op.drop_index("ix_receipts_grc_id", table_name="receipts")
    op.drop_index("ix_receipts_member_id", table_name="receipts")
    op.drop_table("receipts")
    op.drop_index("ix_monthly_qualifications_grc_id", table_name="monthly_qualifications")
    op.drop_index("ix_monthly_qualifications_member_id", table_name="monthly_qualifications")
    op.drop_table("monthly_qualifications")
    op.drop_index("ix_member_grc_queue_member_id", table_name="member_grc_queue")
    op.drop_table("member_grc_queue")
    op.drop_index("ix_grcs_recipient_email", table_name="grcs")
    op.drop_index("ix_grcs_member_id", table_name="grcs")
    op.drop_index("ix_grcs_merchant_id", table_name="grcs")
    op.drop_table("grcs")
    op.drop_index("ix_grc_purchases_merchant_id", table_name="grc_purchases")
    op.drop_table("grc_purchases")
    op.drop_table("members")
    op.drop_index("ix_merchant_invites_token_hash", table_name="merchant_invites")
    op.drop_table("merchant_invites")
    op.drop_table("merchant_bank_accounts")
    op.drop_index("ix_merchants_slug", table_name="merchants")
    op.drop_index("ix_merchants_user_id", table_name="merchants")
    op.drop_table("merchants")
    op.drop_table("categories")
    op.drop_index("ix_magic_link_tokens_token_hash", table_name="magic_link_tokens")
    op.drop_index("ix_magic_link_tokens_email", table_name="magic_link_tokens")
    op.drop_table("magic_link_tokens")
    op.drop_table("email_preferences")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        campaign_recipient_status,
        campaign_recipient_type,
        campaign_status,
        receipt_status,
        qualification_status,
        payment_status,
        payment_method,
        grc_status,
    ):
        enum.drop(bind, checkfirst=True)
