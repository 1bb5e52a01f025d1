"""referral ledger: participants, accounts, earnings, splits, claims

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    # -----------------------------------------------------
    # 1) Participants, accounts and their association
    # -----------------------------------------------------
    op.create_table(
        "participants",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone_number", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        _created_at(),
    )
    op.create_index("ix_participants_phone_number", "participants", ["phone_number"], unique=True)

    op.create_table(
        "accounts",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("magic_code", sa.String(length=64), nullable=True),
        sa.Column("magic_code_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        _uuid(
            "default_participant_id",
            sa.ForeignKey(
                "participants.id",
                name="fk_accounts_default_participant_id_participants",
                ondelete="SET NULL",
            ),
            nullable=True,
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)

    op.create_table(
        "participant_accounts",
        _uuid("id", primary_key=True, nullable=False),
        _uuid(
            "participant_id",
            sa.ForeignKey(
                "participants.id",
                name="fk_participant_accounts_participant_id_participants",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        _uuid(
            "account_id",
            sa.ForeignKey("accounts.id", name="fk_participant_accounts_account_id_accounts", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(length=20), nullable=False),
        _created_at(),
        sa.UniqueConstraint("participant_id", "account_id", name="uq_participant_accounts_participant_account"),
    )
    op.create_index("ix_participant_accounts_participant_id", "participant_accounts", ["participant_id"])
    op.create_index("ix_participant_accounts_account_id", "participant_accounts", ["account_id"])

    # -----------------------------------------------------
    # 2) Workspaces
    # -----------------------------------------------------
    op.create_table(
        "workspaces",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=200), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_workspaces_slug", "workspaces", ["slug"], unique=True)

    op.create_table(
        "workspace_memberships",
        _uuid("id", primary_key=True, nullable=False),
        _uuid(
            "workspace_id",
            sa.ForeignKey(
                "workspaces.id",
                name="fk_workspace_memberships_workspace_id_workspaces",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        _uuid(
            "account_id",
            sa.ForeignKey("accounts.id", name="fk_workspace_memberships_account_id_accounts", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(length=20), nullable=False),
        _created_at(),
        sa.UniqueConstraint("workspace_id", "account_id", name="uq_workspace_memberships_workspace_account"),
    )
    op.create_index("ix_workspace_memberships_account_id", "workspace_memberships", ["account_id"])

    # -----------------------------------------------------
    # 3) Reward policies and link configuration
    # -----------------------------------------------------
    op.create_table(
        "reward_policies",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("program_id", sa.String(length=64), nullable=False),
        _uuid(
            "participant_id",
            sa.ForeignKey(
                "participants.id",
                name="fk_reward_policies_participant_id_participants",
                ondelete="CASCADE",
            ),
            nullable=True,
        ),
        sa.Column("event", sa.String(length=10), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("max_amount", sa.Integer(), nullable=True),
        sa.Column("max_duration", sa.Integer(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_reward_policies_program_event", "reward_policies", ["program_id", "event"])

    op.create_table(
        "links",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=190), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        _uuid(
            "participant_id",
            sa.ForeignKey("participants.id", name="fk_links_participant_id_participants", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("program_id", sa.String(length=64), nullable=True),
        _created_at(),
    )
    op.create_index("ix_links_key", "links", ["key"])
    op.create_index("ix_links_participant_id", "links", ["participant_id"])

    op.create_table(
        "link_split_recipients",
        _uuid("id", primary_key=True, nullable=False),
        _uuid(
            "link_id",
            sa.ForeignKey("links.id", name="fk_link_split_recipients_link_id_links", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("split_percent", sa.Numeric(5, 2), nullable=False),
        _created_at(),
    )
    op.create_index("ix_link_split_recipients_link_id", "link_split_recipients", ["link_id"])

    # -----------------------------------------------------
    # 4) Commission ledger
    # -----------------------------------------------------
    op.create_table(
        "earnings",
        _uuid("id", primary_key=True, nullable=False),
        _uuid(
            "participant_id",
            sa.ForeignKey("participants.id", name="fk_earnings_participant_id_participants", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("program_id", sa.String(length=64), nullable=False),
        _uuid(
            "link_id",
            sa.ForeignKey("links.id", name="fk_earnings_link_id_links", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        sa.Column("event_id", sa.String(length=190), nullable=True),
        sa.Column("invoice_id", sa.String(length=190), nullable=True),
        sa.Column("type", sa.String(length=10), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="usd"),
        sa.Column("earnings", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_earnings_participant_id", "earnings", ["participant_id"])
    op.create_index("ix_earnings_link_id", "earnings", ["link_id"])
    op.create_index("ix_earnings_event_id", "earnings", ["event_id"])
    op.create_index("ix_earnings_status", "earnings", ["status"])
    op.create_index("ix_earnings_created_at", "earnings", ["created_at"])
    op.create_index("ix_earnings_participant_customer_type", "earnings", ["participant_id", "customer_id", "type"])
    op.create_index("ix_earnings_participant_program_type", "earnings", ["participant_id", "program_id", "type"])

    op.create_table(
        "earning_splits",
        _uuid("id", primary_key=True, nullable=False),
        _uuid(
            "earning_id",
            sa.ForeignKey("earnings.id", name="fk_earning_splits_earning_id_earnings", ondelete="CASCADE"),
            nullable=False,
        ),
        _uuid(
            "split_earning_id",
            sa.ForeignKey("earnings.id", name="fk_earning_splits_split_earning_id_earnings", ondelete="SET NULL"),
            nullable=True,
        ),
        _uuid(
            "participant_id",
            sa.ForeignKey(
                "participants.id",
                name="fk_earning_splits_participant_id_participants",
                ondelete="SET NULL",
            ),
            nullable=True,
        ),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("split_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("earnings", sa.Integer(), nullable=False),
        sa.Column("claimed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        _uuid(
            "claimed_by_account_id",
            sa.ForeignKey(
                "accounts.id",
                name="fk_earning_splits_claimed_by_account_id_accounts",
                ondelete="SET NULL",
            ),
            nullable=True,
        ),
        _created_at(),
    )
    op.create_index("ix_earning_splits_earning_id", "earning_splits", ["earning_id"])
    op.create_index("ix_earning_splits_phone_claimed", "earning_splits", ["phone_number", "claimed"])

    op.create_table(
        "earning_audit_entries",
        _uuid("id", primary_key=True, nullable=False),
        _uuid(
            "earning_id",
            sa.ForeignKey("earnings.id", name="fk_earning_audit_entries_earning_id_earnings", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action", sa.String(length=40), nullable=False),
        sa.Column("actor", sa.String(length=320), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _created_at(),
    )
    op.create_index("ix_earning_audit_entries_earning_id", "earning_audit_entries", ["earning_id"])
    op.create_index("ix_earning_audit_entries_action", "earning_audit_entries", ["action"])

    # -----------------------------------------------------
    # 5) Phone verification secrets (bcrypt hashes)
    # -----------------------------------------------------
    op.create_table(
        "phone_verification_tokens",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("purpose", sa.String(length=20), nullable=False),
        sa.Column("token_hash", sa.String(length=100), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
    )
    op.create_index(
        "ix_phone_verification_tokens_phone_purpose",
        "phone_verification_tokens",
        ["phone_number", "purpose"],
    )


def downgrade() -> None:
    op.drop_index("ix_phone_verification_tokens_phone_purpose", table_name="phone_verification_tokens")
    op.drop_table("phone_verification_tokens")

    op.drop_index("ix_earning_audit_entries_action", table_name="earning_audit_entries")
    op.drop_index("ix_earning_audit_entries_earning_id", table_name="earning_audit_entries")
    op.drop_table("earning_audit_entries")

    op.drop_index("ix_earning_splits_phone_claimed", table_name="earning_splits")
    op.drop_index("ix_earning_splits_earning_id", table_name="earning_splits")
    op.drop_table("earning_splits")

    op.drop_index("ix_earnings_participant_program_type", table_name="earnings")
    op.drop_index("ix_earnings_participant_customer_type", table_name="earnings")
    op.drop_index("ix_earnings_created_at", table_name="earnings")
    op.drop_index("ix_earnings_status", table_name="earnings")
    op.drop_index("ix_earnings_event_id", table_name="earnings")
    op.drop_index("ix_earnings_link_id", table_name="earnings")
    op.drop_index("ix_earnings_participant_id", table_name="earnings")
    op.drop_table("earnings")

    op.drop_index("ix_link_split_recipients_link_id", table_name="link_split_recipients")
    op.drop_table("link_split_recipients")

    op.drop_index("ix_links_participant_id", table_name="links")
    op.drop_index("ix_links_key", table_name="links")
    op.drop_table("links")

    op.drop_index("ix_reward_policies_program_event", table_name="reward_policies")
    op.drop_table("reward_policies")

    op.drop_index("ix_workspace_memberships_account_id", table_name="workspace_memberships")
    op.drop_table("workspace_memberships")

    op.drop_index("ix_workspaces_slug", table_name="workspaces")
    op.drop_table("workspaces")

    op.drop_index("ix_participant_accounts_account_id", table_name="participant_accounts")
    op.drop_index("ix_participant_accounts_participant_id", table_name="participant_accounts")
    op.drop_table("participant_accounts")

    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")

    op.drop_index("ix_participants_phone_number", table_name="participants")
    op.drop_table("participants")
