"""
Business profile posts
Drafts, scheduling, publishing to Google and post statistics
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .ai import ContentGenerator
from .base import BaseService, user_action
from .database.models import Post, PostStatus, PostType
from .errors import ActionResult, DashboardError, NotFoundError
from .google_client import POST_TOPIC_TYPES, build_post_payload
from .utils import utcnow, parse_timestamp, last_path_segment
from .validation import CreatePostInput, UpdatePostInput, PostFilter

logger = logging.getLogger(__name__)

TOPIC_TO_POST_TYPE = {v: k for k, v in POST_TOPIC_TYPES.items()}


def store_google_posts(db, user_id: str, location_id: int, items: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Upsert local posts fetched from Google for one location

    Known posts (matched by provider id) are refreshed and marked
    published; unknown ones are inserted as published posts.
    """
    created = 0
    for item in items:
        provider_id = last_path_segment(item.get("name"))
        if not provider_id:
            continue
        published_at = parse_timestamp(item.get("createTime"))

        existing = db.find_post_by_provider_id(user_id, provider_id)
        if existing:
            db.update_post(
                user_id, existing["id"],
                content=item.get("summary") or existing.get("content") or "",
                status=PostStatus.PUBLISHED.value,
                published_at=existing.get("published_at") or published_at,
            )
            continue

        event = item.get("event") or {}
        cta = item.get("callToAction") or {}
        media = item.get("media") or []
        db.insert_post(Post(
            user_id=user_id,
            location_id=location_id,
            post_type=TOPIC_TO_POST_TYPE.get(item.get("topicType"), PostType.WHATS_NEW.value),
            title=event.get("title"),
            content=item.get("summary") or "",
            media_url=(media[0].get("googleUrl") or media[0].get("sourceUrl")) if media else None,
            call_to_action=cta.get("actionType"),
            call_to_action_url=cta.get("url"),
            published_at=published_at,
            status=PostStatus.PUBLISHED.value,
            provider_post_id=provider_id,
        ))
        created += 1

    return {"synced": len(items), "new": created}


class PostManager(BaseService):
    """Post actions for one user at a time"""

    def __init__(
        self,
        db,
        generator: Optional[ContentGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        **kwargs
    ):
        super().__init__(db, **kwargs)
        self._generator = generator
        self.clock = clock or utcnow

    @property
    def generator(self) -> ContentGenerator:
        if self._generator is None:
            self._generator = ContentGenerator()
        return self._generator

    def _get(self, user_id: str, post_id: int) -> Dict[str, Any]:
        post = self.db.get_post(user_id, post_id)
        if not post:
            raise NotFoundError("Post not found")
        return post

    def _publish(self, user_id: str, post: Dict[str, Any]):
        """Create the post on Google; marks it failed if Google refuses"""
        payload = build_post_payload(
            post["post_type"],
            post.get("content") or "",
            title=post.get("title"),
            start_date=post.get("start_date"),
            end_date=post.get("end_date"),
            media_url=post.get("media_url"),
            cta_type=post.get("call_to_action"),
            cta_url=post.get("call_to_action_url"),
        )
        try:
            client = self.google_client(user_id, post["gmb_account_id"])
            response = client.create_local_post(post["google_account_id"], post["google_location_id"], payload)
        except DashboardError as e:
            self.db.update_post(user_id, post["id"], status=PostStatus.FAILED.value, error_message=str(e))
            raise

        self.db.update_post(
            user_id, post["id"],
            status=PostStatus.PUBLISHED.value,
            published_at=self.clock(),
            provider_post_id=last_path_segment(response.get("name")),
            error_message=None,
        )

    # =========================
    # Listing
    # =========================
    @user_action
    def get_posts(self, user_id: str, **filters) -> ActionResult:
        f = PostFilter(**filters)
        rows, total = self.db.list_posts(user_id, **f.model_dump())
        return ActionResult.ok(data={
            "posts": rows,
            "total": total,
            "limit": f.limit,
            "offset": f.offset,
            "hasMore": f.offset + len(rows) < total,
        })

    # =========================
    # Create / Update / Delete
    # =========================
    @user_action
    def create_post(self, user_id: str, **fields) -> ActionResult:
        """
        Create a post

        A scheduled post is queued and left for publish_due_posts. An
        unscheduled "What's New" post is published right away; any other
        type is saved as a draft.

        Keyword args are the CreatePostInput fields.
        """
        data = CreatePostInput(**fields)
        location = self.require_location(user_id, data.location_id)

        scheduled_at = parse_timestamp(data.scheduled_at)
        status = PostStatus.QUEUED if scheduled_at else PostStatus.DRAFT

        post_id = self.db.insert_post(Post(
            user_id=user_id,
            location_id=location["id"],
            post_type=data.post_type,
            title=data.title,
            content=data.description,
            media_url=data.media_url,
            call_to_action=data.cta_type,
            call_to_action_url=data.cta_url,
            start_date=parse_timestamp(data.start_date),
            end_date=parse_timestamp(data.end_date),
            scheduled_at=scheduled_at,
            status=status.value,
        ))

        if status == PostStatus.QUEUED:
            message = "Post scheduled successfully"
        elif data.post_type == PostType.WHATS_NEW.value:
            try:
                self._publish(user_id, self._get(user_id, post_id))
            except DashboardError as e:
                logger.error(f"Publishing post {post_id} failed: {e}")
                self.refresh_dashboard(action="post_created", post_id=post_id)
                return ActionResult.from_exception(e, data={"id": post_id})
            message = "Post published successfully"
        else:
            message = "Post saved as draft"

        self.db.log_activity(user_id, "post_created", message, {"post_id": post_id})
        self.refresh_dashboard(action="post_created", post_id=post_id)
        logger.info(f"{message} (post {post_id})")
        return ActionResult.ok(message, {"id": post_id})

    @user_action
    def update_post(self, user_id: str, post_id: int, **fields) -> ActionResult:
        """Edit an unpublished post; setting scheduled_at queues it"""
        data = UpdatePostInput(post_id=post_id, **fields)
        post = self._get(user_id, data.post_id)
        if post["status"] == PostStatus.PUBLISHED.value:
            return ActionResult.fail("Published posts cannot be edited", "POST_PUBLISHED")

        columns = {
            "title": "title",
            "description": "content",
            "media_url": "media_url",
            "cta_type": "call_to_action",
            "cta_url": "call_to_action_url",
            "scheduled_at": "scheduled_at",
        }
        changes = {columns[k]: v for k, v in data.model_dump(exclude_unset=True).items() if k in columns}
        if "scheduled_at" in changes:
            changes["scheduled_at"] = parse_timestamp(changes["scheduled_at"])
            changes["status"] = PostStatus.QUEUED.value if changes["scheduled_at"] else PostStatus.DRAFT.value
        if not changes:
            return ActionResult.fail("Nothing to update", "VALIDATION_ERROR")

        self.db.update_post(user_id, post["id"], **changes)
        self.refresh_dashboard(action="post_updated", post_id=post["id"])
        return ActionResult.ok("Post updated successfully", {"id": post["id"]})

    @user_action
    def delete_post(self, user_id: str, post_id: int) -> ActionResult:
        """Delete a post, removing it from Google first when published"""
        post = self._get(user_id, post_id)
        if post["status"] == PostStatus.PUBLISHED.value and post.get("provider_post_id"):
            client = self.google_client(user_id, post["gmb_account_id"])
            client.delete_local_post(post["google_account_id"], post["google_location_id"], post["provider_post_id"])

        self.db.delete_post(user_id, post["id"])
        self.refresh_dashboard(action="post_deleted", post_id=post["id"])
        return ActionResult.ok("Post deleted successfully", {"id": post["id"]})

    # =========================
    # Publishing
    # =========================
    @user_action
    def publish_post(self, user_id: str, post_id: int) -> ActionResult:
        post = self._get(user_id, post_id)
        if post["post_type"] != PostType.WHATS_NEW.value:
            return ActionResult.fail("Only 'What's New' posts can be published to Google", "UNSUPPORTED_POST_TYPE")
        if post["status"] == PostStatus.PUBLISHED.value:
            return ActionResult.fail("Post is already published", "ALREADY_PUBLISHED")

        self._publish(user_id, post)
        self.db.log_activity(user_id, "post_published", "Post published", {"post_id": post["id"]})
        self.refresh_dashboard(action="post_published", post_id=post["id"])
        return ActionResult.ok("Post published successfully", {"id": post["id"]})

    @user_action
    def publish_due_posts(self, user_id: str, now: Optional[datetime] = None) -> ActionResult:
        """Publish every queued post whose scheduled time has passed"""
        due = self.db.get_due_posts(now or self.clock(), user_id)
        if not due:
            return ActionResult.ok("No posts due", {"published": 0, "total": 0})

        published = 0
        for post in due:
            result = self.publish_post(user_id, post["id"])
            if result.success:
                published += 1
            else:
                logger.warning(f"Scheduled post {post['id']} not published: {result.error}")
                self.db.update_post(user_id, post["id"], status=PostStatus.FAILED.value, error_message=result.error)

        return ActionResult.ok(f"Published {published} of {len(due)} posts",
                               {"published": published, "total": len(due)})

    @user_action
    def sync_posts(self, user_id: str, location_id: int) -> ActionResult:
        """Pull a location's posts from Google"""
        location = self.require_location(user_id, location_id)
        client = self.google_client(user_id, location["gmb_account_id"])
        items = client.list_local_posts(location["google_account_id"], location["location_id"])
        stats = store_google_posts(self.db, user_id, location["id"], items)
        self.refresh_dashboard(action="posts_synced", location_id=location["id"])
        return ActionResult.ok(f"Synced {stats['synced']} posts", stats)

    # =========================
    # Bulk
    # =========================
    @user_action
    def bulk_delete(self, user_id: str, post_ids: List[int]) -> ActionResult:
        if not post_ids:
            return ActionResult.fail("No posts selected", "VALIDATION_ERROR")
        deleted = sum(1 for post_id in post_ids if self.delete_post(user_id, post_id).success)
        message = f"Deleted {deleted} of {len(post_ids)} posts"
        if deleted == 0:
            return ActionResult.fail(message, "BULK_DELETE_FAILED")
        return ActionResult.ok(message, {"deleted": deleted, "total": len(post_ids)})

    @user_action
    def bulk_publish(self, user_id: str, post_ids: List[int]) -> ActionResult:
        if not post_ids:
            return ActionResult.fail("No posts selected", "VALIDATION_ERROR")
        published = sum(1 for post_id in post_ids if self.publish_post(user_id, post_id).success)
        message = f"Published {published} of {len(post_ids)} posts"
        if published == 0:
            return ActionResult.fail(message, "BULK_PUBLISH_FAILED")
        return ActionResult.ok(message, {"published": published, "total": len(post_ids)})

    # =========================
    # Stats / AI
    # =========================
    @user_action
    def get_post_stats(self, user_id: str, location_id: Optional[int] = None) -> ActionResult:
        posts = self.db.get_posts_for_user(user_id, location_id)
        week_ago = self.clock() - timedelta(days=7)

        def count(**match):
            return sum(1 for p in posts if all(p.get(k) == v for k, v in match.items()))

        this_week = 0
        for post in posts:
            created = parse_timestamp(post.get("created_at"))
            if created and created >= week_ago:
                this_week += 1

        return ActionResult.ok(data={
            "total": len(posts),
            "published": count(status=PostStatus.PUBLISHED.value),
            "drafts": count(status=PostStatus.DRAFT.value),
            "scheduled": count(status=PostStatus.QUEUED.value),
            "failed": count(status=PostStatus.FAILED.value),
            "whatsNew": count(post_type=PostType.WHATS_NEW.value),
            "events": count(post_type=PostType.EVENT.value),
            "offers": count(post_type=PostType.OFFER.value),
            "thisWeek": this_week,
        })

    @user_action
    def generate_post_content(
        self,
        user_id: str,
        topic: str,
        post_type: str = PostType.WHATS_NEW.value,
        location_id: Optional[int] = None,
        tone: str = "friendly"
    ) -> ActionResult:
        business_name = None
        if location_id is not None:
            business_name = self.require_location(user_id, location_id).get("location_name")
        content = self.generator.generate_post_content(topic, post_type, business_name, tone)
        return ActionResult.ok("Post content generated", content)
