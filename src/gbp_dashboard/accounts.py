"""
Connected Google accounts
Connect, import locations, list and disconnect (keep / delete / export)
"""
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .base import BaseService, user_action
from .database.models import Account, Location, DisconnectOption
from .errors import ActionResult, NotFoundError
from .google_client import parse_location
from .utils import utcnow, write_json

logger = logging.getLogger(__name__)

# Never handed back to callers
SECRET_COLUMNS = ("access_token", "refresh_token")

DISCONNECT_MESSAGES = {
    DisconnectOption.DELETE: "Account disconnected and all data deleted successfully",
    DisconnectOption.EXPORT: "Account disconnected and data exported successfully",
    DisconnectOption.KEEP: "Account disconnected. Historical data has been anonymized and archived.",
}


def _public(account: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in account.items() if k not in SECRET_COLUMNS}


class AccountManager(BaseService):
    """Lifecycle of a user's Google Business Profile accounts"""

    @user_action
    def connect_account(
        self,
        user_id: str,
        account_id: str,
        account_name: str = "",
        email: Optional[str] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None
    ) -> ActionResult:
        """
        Store (or refresh) an account and its OAuth tokens

        Args:
            user_id: Owner
            account_id: Google resource name, e.g. accounts/123
            account_name: Display name
            email: Google account email
            access_token: Current access token
            refresh_token: Long-lived refresh token
            expires_in: Seconds until the access token expires

        Returns:
            ActionResult with data {"id": local account id}
        """
        if not account_id:
            return ActionResult.fail("Account id is required", "VALIDATION_ERROR")

        expires_at = utcnow() + timedelta(seconds=expires_in) if expires_in else None
        local_id = self.db.upsert_account(Account(
            user_id=user_id,
            account_id=account_id,
            account_name=account_name or account_id,
            email=email,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=expires_at,
        ))

        self.db.log_activity(user_id, "account_connected", f"Connected {account_name or account_id}",
                             {"account_id": local_id})
        self.refresh_dashboard(action="account_connected", account_id=local_id)
        logger.info(f"Connected account {account_id} for user {user_id}")
        return ActionResult.ok("Account connected successfully", {"id": local_id})

    @user_action
    def import_locations(self, user_id: str, account_id: int) -> ActionResult:
        """Pull the account's locations from Google and upsert them"""
        account = self.db.get_account(user_id, account_id)
        if not account:
            raise NotFoundError("Account not found", code="ACCOUNT_NOT_FOUND")
        if not account.get("is_active"):
            return ActionResult.fail("Account is inactive", "ACCOUNT_INACTIVE")

        client = self.google_client(user_id, account_id)
        items = client.list_locations(account["account_id"])

        ids = []
        for item in items:
            fields = parse_location(item)
            if not fields["location_id"]:
                continue
            ids.append(self.db.upsert_location(Location(
                user_id=user_id,
                gmb_account_id=account_id,
                **fields
            )))

        self.refresh_dashboard(action="locations_imported", account_id=account_id)
        logger.info(f"Imported {len(ids)} locations for account {account_id}")
        return ActionResult.ok(f"Imported {len(ids)} locations", {"location_ids": ids})

    @user_action
    def add_location(
        self,
        user_id: str,
        account_id: int,
        location_id: str,
        location_name: str = "",
        **fields
    ) -> ActionResult:
        """Register a location by hand (Google id known, no API lookup)"""
        if not self.db.get_account(user_id, account_id):
            raise NotFoundError("Account not found", code="ACCOUNT_NOT_FOUND")

        local_id = self.db.upsert_location(Location(
            user_id=user_id,
            gmb_account_id=account_id,
            location_id=location_id,
            location_name=location_name,
            **fields
        ))
        self.refresh_dashboard(action="location_added", location_id=local_id)
        return ActionResult.ok("Location added", {"id": local_id})

    @user_action
    def list_accounts(self, user_id: str, active_only: bool = False) -> ActionResult:
        accounts = []
        for account in self.db.list_accounts(user_id, active_only=active_only):
            row = _public(account)
            row["location_count"] = len(self.db.get_location_ids_for_account(user_id, account["id"]))
            accounts.append(row)
        return ActionResult.ok(data=accounts)

    # =========================
    # Disconnect
    # =========================
    def _build_export(self, user_id: str, location_ids: List[int]) -> Dict[str, Any]:
        locations, reviews, questions, posts = [], [], [], []
        for location_id in location_ids:
            location = self.db.get_location(user_id, location_id)
            if location:
                locations.append(location)
            reviews.extend(self.db.get_reviews_for_user(user_id, location_id, include_archived=True))
            questions.extend(self.db.get_questions_for_user(user_id, location_id))
            posts.extend(self.db.get_posts_for_user(user_id, location_id))

        return {
            "exportDate": utcnow().isoformat(),
            "locations": locations,
            "reviews": reviews,
            "questions": questions,
            "posts": posts,
        }

    def _archive(self, user_id: str, location_ids: List[int]) -> Dict[str, int]:
        return {
            "locations": self.db.archive_locations(user_id, location_ids),
            "reviews": self.db.archive_reviews_for_locations(user_id, location_ids),
            "questions": self.db.archive_questions_for_locations(user_id, location_ids),
            "posts": self.db.archive_posts_for_locations(user_id, location_ids),
        }

    def _delete(self, user_id: str, location_ids: List[int]) -> Dict[str, int]:
        # Children first, the locations last
        return {
            "metrics": self.db.delete_metrics_for_locations(user_id, location_ids),
            "posts": self.db.delete_posts_for_locations(user_id, location_ids),
            "questions": self.db.delete_questions_for_locations(user_id, location_ids),
            "reviews": self.db.delete_reviews_for_locations(user_id, location_ids),
            "locations": self.db.delete_locations(user_id, location_ids),
        }

    @user_action
    def disconnect_account(
        self,
        user_id: str,
        account_id: int,
        option: str = DisconnectOption.KEEP.value,
        output_dir: Optional[Path] = None
    ) -> ActionResult:
        """
        Disconnect an account and decide what happens to its data

        Args:
            user_id: Owner
            account_id: Local account id
            option: "keep" archives and anonymises, "delete" removes
                    everything, "export" writes a JSON export and then archives
            output_dir: Export directory (defaults to config.EXPORTS_DIR)

        Returns:
            ActionResult; data carries per-table counts and the export path
        """
        try:
            choice = DisconnectOption(option)
        except ValueError:
            return ActionResult.fail(f"Invalid disconnect option: {option}", "VALIDATION_ERROR")

        account = self.db.get_account(user_id, account_id)
        if not account:
            raise NotFoundError("Account not found", code="ACCOUNT_NOT_FOUND")

        location_ids = self.db.get_location_ids_for_account(user_id, account_id)
        data: Dict[str, Any] = {"option": choice.value}

        if choice == DisconnectOption.EXPORT:
            export_path = config.get_export_path(user_id, account_id, output_dir)
            write_json(export_path, self._build_export(user_id, location_ids))
            data["exportPath"] = str(export_path)
            logger.info(f"Exported account {account_id} data to {export_path}")

        # Data changes and the deactivation commit together
        with self.db.transaction():
            if choice == DisconnectOption.DELETE:
                data["deleted"] = self._delete(user_id, location_ids)
            else:
                data["archived"] = self._archive(user_id, location_ids)
            self.db.deactivate_account(user_id, account_id)

        message = DISCONNECT_MESSAGES[choice]
        self.db.log_activity(user_id, "account_disconnected", message,
                             {"account_id": account_id, "option": choice.value})
        self.refresh_dashboard(action="account_disconnected", account_id=account_id)
        logger.info(f"Disconnected account {account_id} ({choice.value})")
        return ActionResult.ok(message, data)
