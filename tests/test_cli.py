"""
Tests for the command line interface
"""
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gbp_dashboard.database import DatabaseManager
from gbp_dashboard.main import main
from gbp_dashboard.rate_limit import RateLimitResult

USER = "user-1"


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("gbp_dashboard.config.setup_logging"):
        yield


@pytest.fixture
def db_path(temp_dir):
    return temp_dir / "cli.duckdb"


@pytest.fixture
def run(db_path, capsys):
    """Run the CLI and return (exit code, stdout)"""
    def _run(*argv, user=USER):
        with pytest.raises(SystemExit) as exc:
            main(["--db", str(db_path), "--user", user, *argv])
        return exc.value.code, capsys.readouterr().out
    return _run


@pytest.mark.unit
class TestCLI:

    def test_no_command(self, run):
        code, out = run()
        assert code == 1
        assert "usage" in out.lower()

    def test_init_db(self, run):
        code, out = run("init-db")
        assert code == 0
        assert "Database ready" in out
        assert "reviews: 0 rows" in out

    def test_missing_user(self, run):
        code, out = run("stats", user="")
        assert code == 1
        assert "No user given" in out

    def test_connect_and_create_draft(self, run, db_path):
        code, out = run("connect", "accounts/123", "--name", "Cafe", "--location", "locations/9")
        assert code == 0
        assert "Account connected successfully" in out
        assert "Account id: 1" in out
        assert "Location added" in out

        code, out = run("create-post", "1", "--type", "offer", "--title", "Half price", "--text", "Mondays only")
        assert code == 0
        assert "Post saved as draft" in out

        code, out = run("posts")
        assert "1 posts" in out
        assert "Mondays only" in out

        db = DatabaseManager(db_path)
        try:
            assert db.list_locations(USER)[0]["location_id"] == "locations/9"
        finally:
            db.close()

    def test_stats_prints_json(self, run):
        code, out = run("stats")
        assert code == 0
        assert '"totalReviews": 0' in out

    def test_failure_exit_code(self, run):
        code, out = run("reply", "404", "--text", "Thanks")
        assert code == 1
        assert "Code: NOT_FOUND" in out

    def test_answer_without_template(self, run):
        code, out = run("answer", "7")
        assert code == 1
        assert "no matching template" in out

    def test_rate_limited(self, run):
        blocked = RateLimitResult(success=False, limit=10, remaining=0, reset=0)
        with patch("gbp_dashboard.main.check_rate_limit", return_value=blocked):
            code, out = run("connect", "accounts/123")
        assert code == 1
        assert "Too many requests" in out

    def test_read_only_commands_skip_rate_limit(self, run):
        with patch("gbp_dashboard.main.check_rate_limit") as limiter:
            code, _ = run("reviews")
        assert code == 0
        limiter.assert_not_called()
