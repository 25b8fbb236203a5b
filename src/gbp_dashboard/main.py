"""
GBP Dashboard - Main CLI
Account, sync, review, question and post commands over the local database
"""
import sys
import json
import logging
import argparse
from pathlib import Path

from . import config
from .accounts import AccountManager
from .auto_reply import AutoReplyEngine
from .dashboard import DashboardService
from .database import DatabaseManager
from .errors import ActionResult, get_user_message
from .posts import PostManager
from .questions import QuestionManager
from .rate_limit import check_rate_limit
from .reviews import ReviewManager
from .sync import SyncEngine
from .utils import json_default

logger = logging.getLogger(__name__)

# Commands that only read the local database are not rate limited
READ_ONLY_COMMANDS = {"init-db", "stats", "status", "reviews", "questions", "posts", "dashboard", "weekly"}


# =========================
# Output Helpers
# =========================
def print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=json_default))


def report(result: ActionResult, show_data: bool = False) -> int:
    """Print an action result; returns the process exit code"""
    if result.success:
        if result.message:
            print(f"✅ {result.message}")
        if show_data and result.data is not None:
            print_json(result.data)
        return 0

    print(f"❌ {result.error or get_user_message(result.error_code or 'INTERNAL_ERROR')}")
    if result.error_code:
        print(f"   Code: {result.error_code}")
    return 1


def open_db(args) -> DatabaseManager:
    db = DatabaseManager(args.db)
    db.initialize_schema()
    return db


# =========================
# CLI Commands
# =========================
def cmd_init_db(args):
    """Create the schema"""
    db = open_db(args)
    print("✅ Database ready")
    for table, count in db.get_table_stats().items():
        print(f"   {table}: {count:,} rows")
    db.close()
    return 0


def cmd_stats(args):
    db = open_db(args)
    code = report(DashboardService(db).get_dashboard_stats(args.user), show_data=True)
    db.close()
    return code


def cmd_connect(args):
    """Connect an account, then add or import its locations"""
    db = open_db(args)
    accounts = AccountManager(db)

    result = accounts.connect_account(
        args.user,
        args.account_id,
        account_name=args.name or "",
        email=args.email,
        access_token=args.access_token,
        refresh_token=args.refresh_token,
        expires_in=args.expires_in,
    )
    code = report(result)
    if code:
        db.close()
        return code

    local_id = result.data["id"]
    print(f"   Account id: {local_id}")
    for location_id in args.location or []:
        code = report(accounts.add_location(args.user, local_id, location_id)) or code
    if args.import_locations:
        code = report(accounts.import_locations(args.user, local_id)) or code

    db.close()
    return code


def _sync_engine(db, args) -> SyncEngine:
    auto_reply = AutoReplyEngine(db) if args.auto_reply else None
    return SyncEngine(db, auto_reply=auto_reply, metrics_days=args.metrics_days)


def cmd_sync(args):
    db = open_db(args)
    result = _sync_engine(db, args).sync_location(args.user, args.location)
    code = report(result)
    if result.data:
        for step, stats in (result.data.get("stats") or {}).items():
            print(f"   {step}: {stats}")
        for step, error in (result.data.get("errors") or {}).items():
            print(f"   ⚠️  {step}: {error}")
    db.close()
    return code


def cmd_sync_all(args):
    db = open_db(args)
    result = _sync_engine(db, args).sync_all_locations(args.user)
    code = report(result)
    for item in (result.data or {}).get("results", []):
        mark = "✓" if item["success"] else "✗"
        print(f"   {mark} location {item['location_id']}: {item.get('message') or item.get('error')}")
    db.close()
    return code


def cmd_status(args):
    db = open_db(args)
    code = report(SyncEngine(db).get_sync_status(args.user, args.location), show_data=True)
    db.close()
    return code


def cmd_reviews(args):
    db = open_db(args)
    result = ReviewManager(db).get_reviews(
        args.user,
        location_id=args.location,
        status=args.status,
        rating=args.rating,
        search_query=args.search,
        limit=args.limit,
    )
    if result.success:
        print(f"📝 {result.data['total']} reviews")
        for review in result.data["reviews"]:
            text = (review.get("review_text") or "").replace("\n", " ")[:80]
            print(f"   [{review['id']}] {'★' * (review.get('rating') or 0):<5} {review.get('status'):<12} {text}")
    code = report(result)
    db.close()
    return code


def cmd_reply(args):
    db = open_db(args)
    reviews = ReviewManager(db)
    if args.ai:
        drafted = reviews.generate_ai_reply(args.user, args.review, tone=args.tone, save=True)
        code = report(drafted)
        if not code:
            print(f"\n{drafted.data['reply']}")
    elif args.approve:
        code = report(reviews.approve_ai_reply(args.user, args.review))
    else:
        code = report(reviews.reply_to_review(args.user, args.review, args.text or ""))
    db.close()
    return code


def cmd_questions(args):
    db = open_db(args)
    result = QuestionManager(db).get_questions(
        args.user,
        location_id=args.location,
        status=args.status,
        limit=args.limit,
    )
    if result.success:
        print(f"❓ {result.data['total']} questions")
        for question in result.data["questions"]:
            print(f"   [{question['id']}] {question.get('answer_status'):<10} {question.get('question_text')}")
    code = report(result)
    db.close()
    return code


def cmd_answer(args):
    db = open_db(args)
    questions = QuestionManager(db)
    text = args.text
    template_id = None
    if not text:
        question = db.get_question(args.user, args.question)
        suggested = questions.suggest_template(args.user, (question or {}).get("question_text") or "")
        template = (suggested.data or {}).get("template")
        if not template:
            print("❌ No answer given and no matching template")
            db.close()
            return 1
        text, template_id = template["template_answer"], template["id"]
    code = report(questions.answer_question(args.user, args.question, text, template_id=template_id))
    db.close()
    return code


def cmd_posts(args):
    db = open_db(args)
    result = PostManager(db).get_posts(args.user, location_id=args.location, status=args.status, limit=args.limit)
    if result.success:
        print(f"📣 {result.data['total']} posts")
        for post in result.data["posts"]:
            print(f"   [{post['id']}] {post.get('post_type'):<9} {post.get('status'):<10} "
                  f"{(post.get('content') or '')[:60]}")
    code = report(result)
    db.close()
    return code


def cmd_create_post(args):
    db = open_db(args)
    fields = {
        "location_id": args.location,
        "post_type": args.type,
        "title": args.title,
        "description": args.text,
        "media_url": args.media_url,
        "cta_type": args.cta_type,
        "cta_url": args.cta_url,
        "start_date": args.start,
        "end_date": args.end,
        "scheduled_at": args.schedule,
    }
    result = PostManager(db).create_post(args.user, **{k: v for k, v in fields.items() if v is not None})
    code = report(result)
    db.close()
    return code


def cmd_publish_due(args):
    db = open_db(args)
    code = report(PostManager(db).publish_due_posts(args.user))
    db.close()
    return code


def cmd_disconnect(args):
    db = open_db(args)
    result = AccountManager(db).disconnect_account(args.user, args.account, args.option, args.output_dir)
    code = report(result)
    if result.success and result.data.get("exportPath"):
        print(f"   Export: {result.data['exportPath']}")
    db.close()
    return code


def cmd_dashboard(args):
    db = open_db(args)
    code = report(DashboardService(db).get_overview(args.user, days=args.days), show_data=True)
    db.close()
    return code


def cmd_weekly(args):
    db = open_db(args)
    code = report(DashboardService(db).get_weekly_performance(args.user, location_id=args.location), show_data=True)
    db.close()
    return code


# =========================
# Main CLI
# =========================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Google Business Profile Dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Connect an account and import its locations
  gbp-dashboard --user u1 connect accounts/123 --refresh-token TOKEN --import

  # Sync one location, replying automatically where enabled
  gbp-dashboard --user u1 sync 1 --auto-reply

  # Reply to a review with an AI draft, then approve it
  gbp-dashboard --user u1 reply 42 --ai --tone professional
  gbp-dashboard --user u1 reply 42 --approve

  # Overview snapshot for the last 7 days
  gbp-dashboard --user u1 dashboard --days 7
        """
    )

    parser.add_argument("--debug", action="store_true", help="Debug mode")
    parser.add_argument("--db", type=Path, default=config.DB_PATH, help="DuckDB database path")
    parser.add_argument("--user", default=config.DEFAULT_USER_ID, help="User id (default: $GBP_USER_ID)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ===== DATABASE =====
    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.set_defaults(func=cmd_init_db)

    stats_parser = subparsers.add_parser("stats", help="Headline dashboard stats")
    stats_parser.set_defaults(func=cmd_stats)

    # ===== ACCOUNTS =====
    connect_parser = subparsers.add_parser("connect", help="Connect a Google account")
    connect_parser.add_argument("account_id", help="Google account resource name (accounts/...)")
    connect_parser.add_argument("--name", help="Display name")
    connect_parser.add_argument("--email")
    connect_parser.add_argument("--access-token")
    connect_parser.add_argument("--refresh-token")
    connect_parser.add_argument("--expires-in", type=int, help="Seconds until the access token expires")
    connect_parser.add_argument("--location", action="append",
                                help="Google location id to add (repeatable)")
    connect_parser.add_argument("--import", dest="import_locations", action="store_true",
                                help="Import all locations from Google")
    connect_parser.set_defaults(func=cmd_connect)

    disconnect_parser = subparsers.add_parser("disconnect", help="Disconnect an account")
    disconnect_parser.add_argument("account", type=int, help="Local account id")
    disconnect_parser.add_argument("--option", default="keep", choices=["keep", "delete", "export"])
    disconnect_parser.add_argument("--output-dir", type=Path, help="Export directory")
    disconnect_parser.set_defaults(func=cmd_disconnect)

    # ===== SYNC =====
    sync_parser = subparsers.add_parser("sync", help="Sync one location")
    sync_parser.add_argument("location", type=int, help="Local location id")
    sync_all_parser = subparsers.add_parser("sync-all", help="Sync every active location")
    for p in (sync_parser, sync_all_parser):
        p.add_argument("--auto-reply", action="store_true", help="Run auto-reply on new reviews")
        p.add_argument("--metrics-days", type=int, default=30)
    sync_parser.set_defaults(func=cmd_sync)
    sync_all_parser.set_defaults(func=cmd_sync_all)

    status_parser = subparsers.add_parser("status", help="Sync status of a location")
    status_parser.add_argument("location", type=int)
    status_parser.set_defaults(func=cmd_status)

    # ===== REVIEWS =====
    reviews_parser = subparsers.add_parser("reviews", help="List reviews")
    reviews_parser.add_argument("--location", type=int)
    reviews_parser.add_argument("--status")
    reviews_parser.add_argument("--rating", type=int)
    reviews_parser.add_argument("--search")
    reviews_parser.add_argument("--limit", type=int, default=20)
    reviews_parser.set_defaults(func=cmd_reviews)

    reply_parser = subparsers.add_parser("reply", help="Reply to a review")
    reply_parser.add_argument("review", type=int, help="Local review id")
    reply_group = reply_parser.add_mutually_exclusive_group(required=True)
    reply_group.add_argument("--text", help="Reply text")
    reply_group.add_argument("--ai", action="store_true", help="Draft a reply with OpenAI")
    reply_group.add_argument("--approve", action="store_true", help="Send the saved AI draft")
    reply_parser.add_argument("--tone", default="friendly",
                              choices=["friendly", "professional", "apologetic", "marketing"])
    reply_parser.set_defaults(func=cmd_reply)

    # ===== QUESTIONS =====
    questions_parser = subparsers.add_parser("questions", help="List customer questions")
    questions_parser.add_argument("--location", type=int)
    questions_parser.add_argument("--status", default="all", choices=["all", "answered", "unanswered"])
    questions_parser.add_argument("--limit", type=int, default=20)
    questions_parser.set_defaults(func=cmd_questions)

    answer_parser = subparsers.add_parser("answer", help="Answer a question")
    answer_parser.add_argument("question", type=int, help="Local question id")
    answer_parser.add_argument("--text", help="Answer text (default: best matching template)")
    answer_parser.set_defaults(func=cmd_answer)

    # ===== POSTS =====
    posts_parser = subparsers.add_parser("posts", help="List posts")
    posts_parser.add_argument("--location", type=int)
    posts_parser.add_argument("--status", default="all", choices=["all", "draft", "queued", "published", "failed"])
    posts_parser.add_argument("--limit", type=int, default=20)
    posts_parser.set_defaults(func=cmd_posts)

    create_parser = subparsers.add_parser("create-post", help="Create a post")
    create_parser.add_argument("location", type=int, help="Local location id")
    create_parser.add_argument("--text", required=True, help="Post body")
    create_parser.add_argument("--type", default="whats_new", choices=["whats_new", "event", "offer", "product"])
    create_parser.add_argument("--title")
    create_parser.add_argument("--media-url")
    create_parser.add_argument("--cta-type", choices=["BOOK", "ORDER", "LEARN_MORE", "SIGN_UP", "CALL", "SHOP"])
    create_parser.add_argument("--cta-url")
    create_parser.add_argument("--start", help="Event/offer start (ISO datetime)")
    create_parser.add_argument("--end", help="Event/offer end (ISO datetime)")
    create_parser.add_argument("--schedule", help="Publish at (ISO datetime)")
    create_parser.set_defaults(func=cmd_create_post)

    due_parser = subparsers.add_parser("publish-due", help="Publish scheduled posts that are due")
    due_parser.set_defaults(func=cmd_publish_due)

    # ===== ANALYTICS =====
    dashboard_parser = subparsers.add_parser("dashboard", help="Overview snapshot")
    dashboard_parser.add_argument("--days", type=int, default=30, choices=[7, 30, 90])
    dashboard_parser.set_defaults(func=cmd_dashboard)

    weekly_parser = subparsers.add_parser("weekly", help="Last 7 days of views, clicks and calls")
    weekly_parser.add_argument("--location", type=int)
    weekly_parser.set_defaults(func=cmd_weekly)

    return parser


def main(argv=None):
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    config.setup_logging(debug=args.debug)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command != "init-db" and not args.user:
        print("❌ No user given. Pass --user or set GBP_USER_ID.")
        sys.exit(1)

    if args.command not in READ_ONLY_COMMANDS:
        limit = check_rate_limit(args.user)
        if not limit.success:
            print(f"❌ {get_user_message('RATE_LIMIT_EXCEEDED')}")
            sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
