"""OOS engine schema: sources, rule versions, rules, inspections, findings, change log.

Revision ID: 001
Revises:
Create Date: 2025-04-01 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create the engine tables."""

    # Regulatory sources
    op.create_table(
        "regulatory_sources",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("org_id", sa.String(100), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("source_type", sa.String(20), nullable=False),
        sa.Column("url", sa.String(500), nullable=True),
        sa.Column("published_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("edition_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("content_hash", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_regulatory_sources"),
    )
    op.create_index("ix_regulatory_sources_org_id", "regulatory_sources", ["org_id"])

    # Rule versions; revision is the optimistic-lock counter
    op.create_table(
        "rule_versions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("org_id", sa.String(100), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("effective_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("effective_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("activated_by", sa.String(255), nullable=True),
        sa.Column("retired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retired_by", sa.String(255), nullable=True),
        sa.Column("content_hash", sa.String(64), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_rule_versions"),
    )
    op.create_index("ix_rule_versions_org_id", "rule_versions", ["org_id"])
    op.create_index("ix_rule_versions_status", "rule_versions", ["status"])

    # Rule version <-> source association; RESTRICT protects referenced sources
    op.create_table(
        "rule_version_sources",
        sa.Column("version_id", sa.String(36), nullable=False),
        sa.Column("source_id", sa.String(36), nullable=False),
        sa.ForeignKeyConstraint(
            ["version_id"],
            ["rule_versions.id"],
            name="fk_rule_version_sources_version_id_rule_versions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["source_id"],
            ["regulatory_sources.id"],
            name="fk_rule_version_sources_source_id_regulatory_sources",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("version_id", "source_id", name="pk_rule_version_sources"),
    )
    op.create_index("ix_rule_version_sources_source_id", "rule_version_sources", ["source_id"])

    # Rules
    op.create_table(
        "rules",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("version_id", sa.String(36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("rule_code", sa.String(50), nullable=True),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("component_code", sa.String(50), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("condition_tree", sa.JSON(), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("is_triage_only", sa.Boolean(), nullable=False),
        sa.Column("citation_text", sa.Text(), nullable=True),
        sa.Column("citation_url", sa.String(500), nullable=True),
        sa.Column("explanation_template", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["version_id"],
            ["rule_versions.id"],
            name="fk_rules_version_id_rule_versions",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_rules"),
    )
    op.create_index("ix_rules_version_id", "rules", ["version_id"])
    op.create_index("ix_rules_category", "rules", ["category"])

    # Inspections; revision guards the derived status
    op.create_table(
        "inspections",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("org_id", sa.String(100), nullable=True),
        sa.Column("asset_ref", sa.String(100), nullable=False),
        sa.Column("inspection_type", sa.String(30), nullable=False),
        sa.Column("rule_version_id", sa.String(36), nullable=False),
        sa.Column("inspected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("inspector_id", sa.String(255), nullable=True),
        sa.Column("inspector_name", sa.String(255), nullable=True),
        sa.Column("inspector_badge", sa.String(50), nullable=True),
        sa.Column("odometer", sa.Integer(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.String(255), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["rule_version_id"],
            ["rule_versions.id"],
            name="fk_inspections_rule_version_id_rule_versions",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_inspections"),
    )
    op.create_index("ix_inspections_org_id", "inspections", ["org_id"])
    op.create_index("ix_inspections_asset_ref", "inspections", ["asset_ref"])
    op.create_index("ix_inspections_rule_version_id", "inspections", ["rule_version_id"])
    op.create_index("ix_inspections_status", "inspections", ["status"])

    # Findings, with the triage sub-state
    op.create_table(
        "findings",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("inspection_id", sa.String(36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("finding_type", sa.String(30), nullable=False),
        sa.Column("component_code", sa.String(50), nullable=True),
        sa.Column("observed_data", sa.JSON(), nullable=False),
        sa.Column("matched_rule_ids", sa.JSON(), nullable=False),
        sa.Column("triggered_rule_ids", sa.JSON(), nullable=False),
        sa.Column("explanations", sa.JSON(), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("original_outcome", sa.String(20), nullable=False),
        sa.Column("defect_noted", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("triage_status", sa.String(20), nullable=False),
        sa.Column("triage_resolved_by", sa.String(255), nullable=True),
        sa.Column("triage_resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("triage_reason", sa.Text(), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["inspection_id"],
            ["inspections.id"],
            name="fk_findings_inspection_id_inspections",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_findings"),
    )
    op.create_index("ix_findings_inspection_id", "findings", ["inspection_id"])
    op.create_index("ix_findings_triage_status", "findings", ["triage_status"])

    # Change log
    op.create_table(
        "change_log_entries",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("version_id", sa.String(36), nullable=True),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_change_log_entries"),
    )
    op.create_index("ix_change_log_entries_entity_id", "change_log_entries", ["entity_id"])
    op.create_index("ix_change_log_entries_version_id", "change_log_entries", ["version_id"])
    op.create_index("ix_change_log_entries_action", "change_log_entries", ["action"])

    # Append-only change log, enforced by the database
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_change_log_modification()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'UPDATE' THEN
                RAISE EXCEPTION 'Change log entries are immutable and cannot be modified. Entry ID: %', OLD.id;
            ELSIF TG_OP = 'DELETE' THEN
                RAISE EXCEPTION 'Change log entries are immutable and cannot be deleted. Entry ID: %', OLD.id;
            END IF;
            RETURN NULL;
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER change_log_immutability_trigger
        BEFORE UPDATE OR DELETE ON change_log_entries
        FOR EACH ROW
        EXECUTE FUNCTION prevent_change_log_modification()
    """)

    op.execute("""
        COMMENT ON TABLE change_log_entries IS
        'Append-only change log of rule version transitions, rule edits and triage decisions. Protected by immutability trigger.';
    """)


def downgrade() -> None:
    """Drop the engine tables."""
    op.execute("DROP TRIGGER IF EXISTS change_log_immutability_trigger ON change_log_entries;")
    op.execute("DROP FUNCTION IF EXISTS prevent_change_log_modification();")

    op.drop_table("change_log_entries")
    op.drop_table("findings")
    op.drop_table("inspections")
    op.drop_table("rules")
    op.drop_table("rule_version_sources")
    op.drop_table("rule_versions")
    op.drop_table("regulatory_sources")
