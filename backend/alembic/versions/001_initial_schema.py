"""Initial schema: documents, parties, shipments, workflow history, reconciliation

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Documents and versions
    op.create_table(
        "documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("primary_reference", sa.String(200), nullable=False),
        sa.Column("secondary_reference", sa.String(200), nullable=True),
        sa.Column("carrier_code", sa.String(20), nullable=True),
        sa.Column("current_version_id", UUID(as_uuid=True), nullable=True),
        sa.Column("version_count", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("document_type", "primary_reference", name="uq_documents_type_reference"),
    )

    op.create_table(
        "document_versions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column("version_label", sa.String(100), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "draft", "submitted", "approved", "amended", "final", "superseded",
                name="version_status",
            ),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column(
            "supersedes_version_id", UUID(as_uuid=True),
            sa.ForeignKey("document_versions.id"), nullable=True,
        ),
        sa.Column("filename", sa.String(512), nullable=True),
        sa.Column("classification_confidence", sa.Float, nullable=True),
        sa.Column("extracted_fields", sa.JSON, nullable=True),
        sa.Column("first_seen_email_id", sa.String(200), nullable=True),
        sa.Column("first_seen_attachment_id", sa.String(200), nullable=True),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("document_id", "content_hash", name="uq_document_versions_hash"),
        sa.UniqueConstraint("document_id", "version_number", name="uq_document_versions_number"),
    )
    op.create_index("ix_document_versions_document_id", "document_versions", ["document_id"])
    op.create_index("ix_document_versions_content_hash", "document_versions", ["content_hash"])

    op.create_table(
        "content_fingerprints",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("source_email_id", sa.String(200), nullable=False),
        sa.Column("attachment_id", sa.String(200), nullable=True),
        sa.Column(
            "document_version_id", UUID(as_uuid=True),
            sa.ForeignKey("document_versions.id"), nullable=True,
        ),
        sa.Column("match_confidence", sa.Float, nullable=True),
        sa.Column("match_method", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("content_hash", "source_email_id", name="uq_content_fingerprints_email"),
    )
    op.create_index("ix_content_fingerprints_content_hash", "content_fingerprints", ["content_hash"])

    # Parties
    op.create_table(
        "parties",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column(
            "party_type",
            sa.Enum("shipper", "consignee", "notify_party", "sender", name="party_role"),
            nullable=False,
        ),
        sa.Column("contact_email", sa.String(320), nullable=True, unique=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("city", sa.String(200), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(100), nullable=True),
        sa.Column("is_customer", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("customer_relationship", sa.String(50), nullable=True),
        sa.Column("total_shipments", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
        sa.UniqueConstraint("name", "party_type", name="uq_parties_name_type"),
    )

    op.create_table(
        "party_email_domains",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("party_id", UUID(as_uuid=True), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_party_email_domains_party_id", "party_email_domains", ["party_id"])

    # Shipments and links
    op.create_table(
        "shipments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_number", sa.String(100), nullable=False, unique=True),
        sa.Column("bl_number", sa.String(100), nullable=True),
        sa.Column("shipper_id", UUID(as_uuid=True), sa.ForeignKey("parties.id"), nullable=True),
        sa.Column("consignee_id", UUID(as_uuid=True), sa.ForeignKey("parties.id"), nullable=True),
        sa.Column("notify_party_id", UUID(as_uuid=True), sa.ForeignKey("parties.id"), nullable=True),
        sa.Column("carrier_name", sa.String(200), nullable=True),
        sa.Column("carrier_scac", sa.String(10), nullable=True),
        sa.Column("carrier_code", sa.String(20), nullable=True),
        sa.Column("vessel_name", sa.String(200), nullable=True),
        sa.Column("voyage_number", sa.String(50), nullable=True),
        sa.Column("vessel_imo", sa.String(20), nullable=True),
        sa.Column("port_of_loading", sa.String(200), nullable=True),
        sa.Column("port_of_loading_code", sa.String(10), nullable=True),
        sa.Column("port_of_discharge", sa.String(200), nullable=True),
        sa.Column("port_of_discharge_code", sa.String(10), nullable=True),
        sa.Column("place_of_receipt", sa.String(200), nullable=True),
        sa.Column("place_of_delivery", sa.String(200), nullable=True),
        sa.Column("etd", sa.Date, nullable=True),
        sa.Column("atd", sa.Date, nullable=True),
        sa.Column("eta", sa.Date, nullable=True),
        sa.Column("ata", sa.Date, nullable=True),
        sa.Column("si_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vgm_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cargo_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("doc_cutoff", sa.DateTime(timezone=True), nullable=True),
        sa.Column("container_numbers", sa.JSON, nullable=True),
        sa.Column("commodity_description", sa.Text, nullable=True),
        sa.Column("total_weight", sa.Float, nullable=True),
        sa.Column("weight_unit", sa.String(10), nullable=True),
        sa.Column("total_packages", sa.Integer, nullable=True),
        sa.Column("package_type", sa.String(50), nullable=True),
        sa.Column("total_volume", sa.Float, nullable=True),
        sa.Column("amendment_number", sa.Integer, nullable=False, server_default="0"),
        sa.Column("workflow_state", sa.String(100), nullable=True),
        sa.Column("workflow_phase", sa.String(50), nullable=True),
        sa.Column("workflow_state_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("state_version", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_shipments_bl_number", "shipments", ["bl_number"])
    op.create_index("ix_shipments_workflow_state", "shipments", ["workflow_state"])

    op.create_table(
        "shipment_emails",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("email_id", sa.String(200), nullable=False),
        sa.Column("thread_id", sa.String(200), nullable=True),
        sa.Column("email_fingerprint", sa.String(32), nullable=True),
        sa.Column(
            "link_type",
            sa.Enum("primary", "related", "amendment", name="email_link_type"),
            nullable=False,
            server_default="related",
        ),
        sa.Column("linked_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("shipment_id", "email_id", name="uq_shipment_emails"),
    )
    op.create_index("ix_shipment_emails_shipment_id", "shipment_emails", ["shipment_id"])
    op.create_index("ix_shipment_emails_email_fingerprint", "shipment_emails", ["email_fingerprint"])

    op.create_table(
        "shipment_documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=False),
        sa.Column("document_version_id", UUID(as_uuid=True), nullable=True),
        sa.Column("document_type", sa.String(50), nullable=True),
        sa.Column("linked_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("shipment_id", "document_id", name="uq_shipment_documents"),
    )
    op.create_index("ix_shipment_documents_shipment_id", "shipment_documents", ["shipment_id"])

    # Workflow history (append-only)
    op.create_table(
        "workflow_state_history",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("previous_state", sa.String(100), nullable=True),
        sa.Column("new_state", sa.String(100), nullable=False),
        sa.Column("document_type", sa.String(100), nullable=False),
        sa.Column("direction", sa.String(20), nullable=True),
        sa.Column("email_id", sa.String(200), nullable=True),
        sa.Column("document_id", UUID(as_uuid=True), nullable=True),
        sa.Column("attachment_id", sa.String(200), nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("actor", sa.String(200), nullable=True),
        sa.Column("transitioned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_workflow_state_history_shipment_id", "workflow_state_history", ["shipment_id"])

    # Reconciliation
    op.create_table(
        "reconciliation_records",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("source_document_type", sa.String(50), nullable=False),
        sa.Column("comparison_document_type", sa.String(50), nullable=False),
        sa.Column("source_document_id", UUID(as_uuid=True), nullable=True),
        sa.Column("comparison_document_id", UUID(as_uuid=True), nullable=True),
        sa.Column("field_comparisons", sa.JSON, nullable=True),
        sa.Column("total_fields", sa.Integer, nullable=False, server_default="0"),
        sa.Column("matching_fields", sa.Integer, nullable=False, server_default="0"),
        sa.Column("discrepancy_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("critical_discrepancies", sa.Integer, nullable=False, server_default="0"),
        sa.Column("warning_discrepancies", sa.Integer, nullable=False, server_default="0"),
        sa.Column("can_proceed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("block_reason", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.Enum("matched", "discrepancies_found", "blocked", "resolved", name="reconciliation_status"),
            nullable=False,
        ),
        sa.Column("resolved_by", sa.String(200), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_reconciliation_records_shipment_id", "reconciliation_records", ["shipment_id"])

    op.create_table(
        "reconciliation_fields",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("field_name", sa.String(100), nullable=False, unique=True),
        sa.Column("field_label", sa.String(200), nullable=False),
        sa.Column("comparison_type", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("applies_to", sa.JSON, nullable=True),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("reconciliation_fields")
    op.drop_table("reconciliation_records")
    op.drop_table("workflow_state_history")
    op.drop_table("shipment_documents")
    op.drop_table("shipment_emails")
    op.drop_table("shipments")
    op.drop_table("party_email_domains")
    op.drop_table("parties")
    op.drop_table("content_fingerprints")
    op.drop_table("document_versions")
    op.drop_table("documents")
    op.execute("DROP TYPE IF EXISTS reconciliation_status")
    op.execute("DROP TYPE IF EXISTS email_link_type")
    op.execute("DROP TYPE IF EXISTS party_role")
    op.execute("DROP TYPE IF EXISTS version_status")
