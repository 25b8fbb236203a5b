"""
Tests for account connection, location import and disconnect
"""
import sys
import json
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, patch

import duckdb
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.accounts import AccountManager
from gbp_dashboard.database import Post, PerformanceMetric
from gbp_dashboard.errors import AuthenticationError
from gbp_dashboard.events import DASHBOARD_REFRESH

USER = "user-1"


@pytest.fixture
def accounts(db, client_factory):
    return AccountManager(db, client_factory=client_factory)


@pytest.mark.unit
class TestConnect:

    def test_connect_account(self, db, accounts):
        refreshed = MagicMock()
        db.events.subscribe(DASHBOARD_REFRESH, refreshed)

        result = accounts.connect_account(
            USER, "accounts/555", "Cafe Co", email="me@cafe.test",
            access_token="a", refresh_token="r", expires_in=3600,
        )

        assert result.success
        account = db.get_account(USER, result.data["id"])
        assert account["account_name"] == "Cafe Co"
        assert account["token_expires_at"] is not None
        assert db.get_recent_activity(USER)[0]["activity_type"] == "account_connected"
        refreshed.assert_called_once()

    def test_name_defaults_to_id(self, db, accounts):
        result = accounts.connect_account(USER, "accounts/555")
        assert db.get_account(USER, result.data["id"])["account_name"] == "accounts/555"

    def test_requires_account_id(self, accounts):
        result = accounts.connect_account(USER, "")
        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"

    def test_requires_user(self, accounts):
        result = accounts.connect_account("", "accounts/555")
        assert result.error_code == "UNAUTHORIZED"
        assert result.error == "Not authenticated"


@pytest.mark.integration
class TestImportLocations:

    def test_import(self, db, accounts, account_id, fake_google, client_factory):
        fake_google.list_locations.return_value = [
            {"name": "locations/1", "title": "First", "storefrontAddress": {"addressLines": ["1 A St"]}},
            {"name": "locations/2", "title": "Second"},
            {"title": "No id"},
        ]

        result = accounts.import_locations(USER, account_id)

        assert result.success
        assert result.message == "Imported 2 locations"
        client_factory.assert_called_once_with("token-abc")
        fake_google.list_locations.assert_called_once_with("accounts/111")
        names = [l["location_name"] for l in db.list_locations(USER)]
        assert names == ["First", "Second"]

    def test_import_reuses_rows(self, db, accounts, account_id, fake_google):
        fake_google.list_locations.return_value = [{"name": "locations/1", "title": "First"}]
        accounts.import_locations(USER, account_id)
        fake_google.list_locations.return_value = [{"name": "locations/1", "title": "Renamed"}]
        accounts.import_locations(USER, account_id)

        rows = db.list_locations(USER)
        assert len(rows) == 1
        assert rows[0]["location_name"] == "Renamed"

    def test_import_unknown_account(self, accounts):
        result = accounts.import_locations(USER, 999)
        assert result.error_code == "ACCOUNT_NOT_FOUND"

    def test_import_inactive_account(self, db, accounts, account_id):
        db.deactivate_account(USER, account_id)
        result = accounts.import_locations(USER, account_id)
        assert result.error_code == "ACCOUNT_INACTIVE"

    def test_import_auth_failure(self, accounts, account_id, fake_google):
        fake_google.list_locations.side_effect = AuthenticationError("401")
        result = accounts.import_locations(USER, account_id)
        assert not result.success
        assert result.error_code == "AUTH_EXPIRED"
        assert "reconnect" in result.error.lower()

    def test_add_location(self, db, accounts, account_id):
        result = accounts.add_location(USER, account_id, "locations/77", "Manual", address="7 B St")
        assert result.success
        assert db.get_location(USER, result.data["id"])["address"] == "7 B St"

    def test_list_accounts_hides_tokens(self, accounts, account_id, location_id):
        result = accounts.list_accounts(USER)
        row = result.data[0]
        assert "access_token" not in row
        assert "refresh_token" not in row
        assert row["location_count"] == 1


@pytest.mark.integration
class TestDisconnect:

    def test_keep_archives_and_anonymizes(self, db, accounts, account_id, location_id, make_review):
        review_id = make_review(reviewer_name="Jane")

        result = accounts.disconnect_account(USER, account_id, "keep")

        assert result.success
        assert result.message == "Account disconnected. Historical data has been anonymized and archived."
        assert result.data["archived"]["reviews"] == 1
        assert db.get_review(USER, review_id)["reviewer_name"] == "Anonymous User"
        assert db.get_location(USER, location_id)["is_archived"] is True

        account = db.get_account(USER, account_id)
        assert account["is_active"] is False
        assert account["refresh_token"] is None

    def test_delete_removes_everything(self, db, accounts, account_id, location_id, make_review, make_question):
        make_review()
        make_question()

        result = accounts.disconnect_account(USER, account_id, "delete")

        assert result.data["deleted"]["reviews"] == 1
        assert result.data["deleted"]["questions"] == 1
        assert result.data["deleted"]["locations"] == 1
        assert db.list_locations(USER) == []
        # the account row stays, inactive
        assert db.get_account(USER, account_id)["is_active"] is False

    def test_export_writes_json(self, db, accounts, account_id, location_id, make_review, temp_dir):
        make_review(review_text="Tasty")

        result = accounts.disconnect_account(USER, account_id, "export", output_dir=temp_dir)

        assert result.message == "Account disconnected and data exported successfully"
        export_path = Path(result.data["exportPath"])
        assert export_path.parent == temp_dir
        exported = json.loads(export_path.read_text())
        assert [l["location_name"] for l in exported["locations"]] == ["Acme Downtown"]
        assert exported["reviews"][0]["review_text"] == "Tasty"
        assert "exportDate" in exported
        assert result.data["archived"]["locations"] == 1

    def test_invalid_option(self, accounts, account_id):
        result = accounts.disconnect_account(USER, account_id, "shred")
        assert result.error_code == "VALIDATION_ERROR"

    def test_other_users_account(self, accounts, account_id):
        result = accounts.disconnect_account("user-2", account_id, "delete")
        assert result.error_code == "ACCOUNT_NOT_FOUND"

    def test_failed_delete_changes_nothing(self, db, accounts, account_id, location_id, make_review, make_question):
        make_review()
        make_question()
        db.insert_post(Post(user_id=USER, location_id=location_id, content="Autumn menu"))
        db.upsert_metrics([PerformanceMetric(
            user_id=USER, location_id=location_id, metric_date=date(2024, 6, 1),
            metric_type="CALL_CLICKS", metric_value=4,
        )])
        refreshed = MagicMock()
        db.events.subscribe(DASHBOARD_REFRESH, refreshed)

        with patch.object(db, "delete_reviews_for_locations", side_effect=duckdb.Error("disk full")):
            with pytest.raises(duckdb.Error):
                accounts.disconnect_account(USER, account_id, "delete")

        assert len(db.get_metrics(USER)) == 1
        assert len(db.get_posts_for_user(USER)) == 1
        assert len(db.get_questions_for_user(USER)) == 1
        assert len(db.get_reviews_for_user(USER)) == 1
        assert [l["id"] for l in db.list_locations(USER)] == [location_id]
        account = db.get_account(USER, account_id)
        assert account["is_active"] is True
        assert account["refresh_token"] == "refresh-xyz"
        refreshed.assert_not_called()

    def test_failed_archive_changes_nothing(self, db, accounts, account_id, location_id, make_review):
        review_id = make_review(reviewer_name="Jane")

        with patch.object(db, "deactivate_account", side_effect=duckdb.Error("disk full")):
            with pytest.raises(duckdb.Error):
                accounts.disconnect_account(USER, account_id, "keep")

        assert db.get_review(USER, review_id)["reviewer_name"] == "Jane"
        assert db.get_location(USER, location_id)["is_archived"] is False
        assert db.get_account(USER, account_id)["is_active"] is True
