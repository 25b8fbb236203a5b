"""
Shared plumbing for the dashboard services
Dependency wiring, the authenticated-user guard and error conversion
"""
import functools
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from .errors import ActionResult, DashboardError, NotFoundError
from .events import EventBus, DASHBOARD_REFRESH
from .google_client import GoogleBusinessClient, TokenManager
from .utils import is_blank

logger = logging.getLogger(__name__)


def user_action(func: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
    """
    Decorate a service method taking user_id as its first argument

    A blank user_id short-circuits to a "Not authenticated" failure. Dashboard,
    validation and Google errors are logged and turned into failed results;
    anything else propagates.
    """
    @functools.wraps(func)
    def wrapper(self, user_id, *args, **kwargs):
        if is_blank(user_id):
            return ActionResult.fail("Not authenticated", "UNAUTHORIZED")
        try:
            return func(self, user_id, *args, **kwargs)
        except ValidationError as e:
            logger.warning(f"{func.__name__}: invalid input: {e.error_count()} error(s)")
            return ActionResult.from_exception(e)
        except DashboardError as e:
            logger.error(f"{func.__name__} failed: {e}")
            return ActionResult.from_exception(e)
    return wrapper


class BaseService:
    """
    Common state of every service

    Args:
        db: DatabaseManager instance
        token_manager: Hands out access tokens (built from db if None)
        client_factory: Callable(access_token) -> Google client
        event_bus: Bus for refresh events (defaults to the database's bus)
    """

    def __init__(
        self,
        db,
        token_manager: Optional[TokenManager] = None,
        client_factory: Optional[Callable[[str], Any]] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.db = db
        self.events = event_bus or db.events
        self.tokens = token_manager or TokenManager(db)
        self.client_factory = client_factory or GoogleBusinessClient

    def google_client(self, user_id: str, account_id: int):
        """Google client authorised for one of the user's accounts"""
        return self.client_factory(self.tokens.get_valid_access_token(user_id, account_id))

    def refresh_dashboard(self, **payload):
        self.events.publish(DASHBOARD_REFRESH, payload)

    def require_location(self, user_id: str, location_id: int) -> Dict[str, Any]:
        location = self.db.get_location(user_id, location_id)
        if not location:
            raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")
        return location
