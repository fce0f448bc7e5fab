"""
Unit tests for ExportService.

Run: pytest tests/unit/test_export_service.py -v
"""

import base64

import pytest

from models.bundle import ExportOptions
from models.team import Actor
from services.export_service import ExportService
from tests.factories import ComponentFactory, populate_team_catalog
from utils.bundle_crypto import decrypt_bundle

ADMIN_A = Actor(id="user-admin-a", email="admin-a@example.com")
MEMBER_A = Actor(id="user-member-a")

BUCKET_URL = "https://test.supabase.co/storage/v1/object/public/supplier-quotes"


@pytest.fixture
def seeded(team_db):
    populate_team_catalog(team_db, "team-a")
    populate_team_catalog(team_db, "team-b")
    return team_db


class TestExportPreconditions:
    """Authentication, role and team checks run before any extraction."""

    def test_unauthenticated(self, seeded):
        result = ExportService(seeded).export_data("team-a", None)

        assert result.success is False
        assert result.status_code == 401
        assert result.error_code == "NOT_AUTHENTICATED"

    def test_member_is_not_allowed(self, seeded):
        result = ExportService(seeded).export_data("team-a", MEMBER_A)

        assert result.success is False
        assert result.status_code == 403
        assert result.error_code == "EXPORT_NOT_ALLOWED"
        assert seeded.calls_for("components", "select") == []

    def test_admin_of_other_team_is_not_allowed(self, seeded):
        result = ExportService(seeded).export_data("team-b", ADMIN_A)

        assert result.error_code == "EXPORT_NOT_ALLOWED"

    def test_missing_team(self, seeded):
        seeded.rows("team_members").append({"team_id": "ghost", "user_id": "user-admin-a", "role": "admin"})

        result = ExportService(seeded).export_data("ghost", ADMIN_A)

        assert result.status_code == 404
        assert result.error_code == "TEAM_NOT_FOUND"


class TestExportBundle:
    """Bundle contents and manifest."""

    def test_default_export(self, seeded):
        result = ExportService(seeded).export_data("team-a", ADMIN_A)

        assert result.success is True
        bundle = result.bundle
        assert bundle.manifest.team_id == "team-a"
        assert bundle.manifest.team_name == "Team A"
        assert bundle.manifest.exported_by == "user-admin-a"
        assert len(bundle.data.components) == 3
        assert {c.team_id for c in bundle.data.components} == {"team-a"}
        assert len(bundle.data.assembly_components) == 2
        assert len(bundle.data.quotation_systems) == 2
        assert len(bundle.data.quotation_items) == 3
        assert bundle.data.price_history is None
        assert bundle.data.activity_logs is None
        assert bundle.attachments is None

    def test_counts_equal_array_lengths(self, seeded):
        bundle = ExportService(seeded).export_data("team-a", ADMIN_A).bundle
        counts = bundle.manifest.counts

        assert counts.components == len(bundle.data.components)
        assert counts.assemblies == len(bundle.data.assemblies)
        assert counts.assembly_components == len(bundle.data.assembly_components)
        assert counts.quotations == len(bundle.data.quotations)
        assert counts.quotation_systems == len(bundle.data.quotation_systems)
        assert counts.quotation_items == len(bundle.data.quotation_items)

    def test_relationships_built(self, seeded):
        bundle = ExportService(seeded).export_data("team-a", ADMIN_A).bundle
        quotation_id = bundle.data.quotations[0].id

        assert len(bundle.relationships.quotation_to_systems[quotation_id]) == 2
        assert sum(len(v) for v in bundle.relationships.system_to_items.values()) == 3

    def test_items_follow_sort_order(self, seeded):
        bundle = ExportService(seeded).export_data("team-a", ADMIN_A).bundle
        system_id = bundle.data.quotation_systems[0].id

        orders = [i.sort_order for i in bundle.data.quotation_items if i.quotation_system_id == system_id]

        assert orders == sorted(orders)

    def test_options_toggle_sections(self, seeded):
        options = ExportOptions(
            include_assemblies=False,
            include_quotations=False,
            include_settings=False,
            include_price_history=True,
        )

        bundle = ExportService(seeded).export_data("team-a", ADMIN_A, options).bundle

        assert bundle.data.assemblies is None
        assert bundle.data.quotations is None
        assert bundle.data.settings is None
        assert len(bundle.data.price_history) == 1
        assert bundle.manifest.includes.assemblies is False
        assert bundle.manifest.includes.price_history is True

    def test_json_is_camel_case(self, seeded):
        dumped = ExportService(seeded).export_data("team-a", ADMIN_A).bundle.to_json_dict()

        assert set(dumped) >= {"manifest", "data", "relationships"}
        assert "schemaVersion" in dumped["manifest"]
        assert "quotationItems" in dumped["data"]
        # Rows keep store column names
        assert "manufacturer_part_number" in dumped["data"]["components"][0]

    def test_progress_reported(self, seeded):
        events = []

        ExportService(seeded).export_data(
            "team-a", ADMIN_A, progress_callback=lambda status, percent, msg: events.append((status, percent)),
        )

        assert events[0] == ("preparing", 0)
        assert events[-1] == ("completed", 100)

    def test_audit_log_completed(self, seeded):
        result = ExportService(seeded).export_data("team-a", ADMIN_A)

        log = next(r for r in seeded.rows("export_import_logs") if r["id"] == result.log_id)
        assert log["operation_type"] == "export"
        assert log["status"] == "completed"
        assert log["record_counts"]["components"] == 3


class TestExportSettings:

    def test_defaults_when_nothing_stored(self, seeded):
        settings = ExportService(seeded).export_data("team-a", ADMIN_A).bundle.data.settings

        assert settings.exchange_rates.usd_to_ils > 0
        assert settings.default_pricing.vat_rate >= 0
        assert "PLC" in settings.categories

    def test_stored_values_win(self, seeded):
        seeded.set_table_data("user_settings", [
            {"team_id": "team-a", "setting_key": "exchangeRates", "setting_value": {"usdToIls": 3.55, "eurToIls": 3.9}},
            {"team_id": "team-a", "setting_key": "componentCategories", "setting_value": {"categories": ["Robots", "PLC"]}},
            {"team_id": "team-a", "setting_key": "numbering_config", "setting_value": {"quotationNumberFormat": "Q-{YYYY}-{N}"}},
        ])

        settings = ExportService(seeded).export_data("team-a", ADMIN_A).bundle.data.settings

        assert settings.exchange_rates.usd_to_ils == 3.55
        assert settings.categories == ["Robots", "PLC"]
        assert settings.numbering_templates.quotation_number_format == "Q-{YYYY}-{N}"


class TestExportAttachments:

    @pytest.fixture
    def with_files(self, seeded):
        component_id = seeded.rows("components")[0]["id"]
        seeded.set_table_data("supplier_quotes", [
            {
                "id": "quote-1", "team_id": "team-a", "file_name": "quote.pdf",
                "file_url": f"{BUCKET_URL}/team-a/quote.pdf", "file_type": "application/pdf", "file_size_kb": 1,
            },
            {
                "id": "quote-2", "team_id": "team-a", "file_name": "external.pdf",
                "file_url": "https://example.com/external.pdf",
            },
        ])
        seeded.storage.objects["supplier-quotes"] = {"team-a/quote.pdf": b"%PDF-1.4 test"}
        return seeded, component_id

    def test_references_by_default(self, with_files):
        db, component_id = with_files

        attachments = ExportService(db).export_data(
            "team-a", ADMIN_A, ExportOptions(include_attachments=True),
        ).bundle.attachments

        assert [a.id for a in attachments] == ["quote-1", "quote-2"]
        assert attachments[0].entity_type == "component"
        assert attachments[0].entity_id == component_id
        assert attachments[0].storage_path == "team-a/quote.pdf"
        assert attachments[1].entity_type == "quotation"
        assert not any(a.embedded for a in attachments)

    def test_embedding(self, with_files):
        db, _ = with_files

        result = ExportService(db).export_data(
            "team-a", ADMIN_A, ExportOptions(include_attachments=True, embed_attachments=True),
        )

        embedded = result.bundle.attachments[0]
        assert embedded.embedded is True
        assert base64.b64decode(embedded.base64_data) == b"%PDF-1.4 test"
        assert result.bundle.attachments[1].embedded is False
        assert result.bundle.manifest.counts.attachments == 2

    def test_download_failure_aborts(self, with_files):
        db, _ = with_files
        db.storage.objects["supplier-quotes"] = {}

        result = ExportService(db).export_data(
            "team-a", ADMIN_A, ExportOptions(include_attachments=True, embed_attachments=True),
        )

        assert result.success is False
        assert result.error_code == "EXPORT_FAILED"


class TestExportFailures:

    def test_extraction_failure_aborts(self, seeded):
        seeded.fail_on("quotations", "select")

        result = ExportService(seeded).export_data("team-a", ADMIN_A)

        assert result.success is False
        assert result.status_code == 500
        assert result.error_code == "EXPORT_FAILED"
        assert result.bundle is None
        log = next(r for r in seeded.rows("export_import_logs") if r["id"] == result.log_id)
        assert log["status"] == "failed"

    def test_audit_failure_does_not_fail_export(self, seeded):
        seeded.fail_on("export_import_logs", "insert")

        result = ExportService(seeded).export_data("team-a", ADMIN_A)

        assert result.success is True
        assert result.log_id is None


class TestEncryptedExport:

    def test_returns_envelope_only(self, seeded):
        result = ExportService(seeded).export_data(
            "team-a", ADMIN_A, ExportOptions(encrypt_data=True, password="correct horse"),
        )

        assert result.success is True
        assert result.bundle is None
        envelope = result.encrypted_file.model_dump(by_alias=True)
        bundle = decrypt_bundle(envelope, "correct horse")
        assert bundle["manifest"]["encryption"]["enabled"] is True
        assert len(bundle["data"]["components"]) == 3

    def test_short_password_fails(self, seeded):
        result = ExportService(seeded).export_data(
            "team-a", ADMIN_A, ExportOptions(encrypt_data=True, password="short"),
        )

        assert result.success is False
        assert result.error_code == "ENCRYPTION_FAILED"
