"""
Tests for the CLI interface.
"""
import os
import tempfile
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from stray_match.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from stray_match.core.candidates import SearchPath
from stray_match.core.errors import RateLimitExceeded
from stray_match.core.orchestrator import (
    CandidateOutcome,
    CandidateReport,
    MatchRequest,
    PipelineResult,
    PipelineState,
)
from stray_match.core.rate_limiter import RateLimitResult
from stray_match.core.token_counter import TokenUsage
from stray_match.storage.matches import MatchStore
from stray_match.storage.models import Tier, UsageEvent
from stray_match.storage.repository import insert_usage_event

runner = CliRunner()


def _limit(allowed=True):
    return RateLimitResult(
        allowed=allowed,
        remaining=29 if allowed else 0,
        reset_at=datetime.now() + timedelta(seconds=30),
        tier=Tier.FREE,
        limit=30,
    )


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch('stray_match.cli.main.setup_logging'):
        yield


@pytest.fixture
def db_env():
    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = os.path.join(temp_dir, "cli.db")
        yield db_path, {"STRAY_MATCH_DB_PATH": db_path, "STRAY_MATCH_CONFIG": "", "PUSH_RELAY_URL": ""}


@pytest.fixture
def mock_services():
    """Patch service wiring so no OpenAI client is built."""
    with patch('stray_match.cli.main.build_services') as mock_build:
        services = MagicMock()
        services.api.tier_for.return_value = Tier.FREE
        mock_build.return_value = services
        yield services


class TestDataCommands:

    def test_init(self, db_env):
        db_path, env = db_env

        result = runner.invoke(app, ["init"], env=env)

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized" in result.output
        assert os.path.exists(db_path)

    def test_demo_is_idempotent(self, db_env):
        _, env = db_env

        first = runner.invoke(app, ["demo"], env=env)
        second = runner.invoke(app, ["demo"], env=env)

        assert first.exit_code == EXIT_CODE_PASS
        assert "lost-whiskers" in first.output
        assert "Try: stray-match match --sighting sighting-white-cat" in first.output
        assert second.exit_code == EXIT_CODE_PASS

    def test_matches_empty(self, db_env):
        _, env = db_env
        runner.invoke(app, ["demo"], env=env)

        result = runner.invoke(app, ["matches", "lost-whiskers"], env=env)

        assert result.exit_code == EXIT_CODE_PASS
        assert "No matches for lost-whiskers." in result.output

    def test_matches_lists_stored_rows(self, db_env):
        db_path, env = db_env
        runner.invoke(app, ["demo"], env=env)
        MatchStore(db_path).accept_if_new("lost-whiskers", "sighting-white-cat", 85, "same pink nose")

        result = runner.invoke(app, ["matches", "lost-whiskers"], env=env)

        assert result.exit_code == EXIT_CODE_PASS
        assert "sighting-white-cat" in result.output
        assert "85%" in result.output

    def test_matches_without_schema_fails(self, db_env):
        _, env = db_env

        result = runner.invoke(app, ["matches", "lost-whiskers"], env=env)

        assert result.exit_code == EXIT_CODE_FAIL

    def test_usage_empty(self, db_env):
        _, env = db_env
        runner.invoke(app, ["init"], env=env)

        result = runner.invoke(app, ["usage"], env=env)

        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage events recorded." in result.output

    def test_usage_lists_events(self, db_env):
        db_path, env = db_env
        runner.invoke(app, ["init"], env=env)
        insert_usage_event(UsageEvent(
            timestamp=datetime.now(),
            user_id="finder",
            feature="lost_animal_match",
            model="gpt-4o",
            prompt_tokens=900,
            completion_tokens=100,
            total_tokens=1000,
            cost=0.00325,
            success=True,
        ), db_path)

        result = runner.invoke(app, ["usage", "--user", "finder"], env=env)

        assert result.exit_code == EXIT_CODE_PASS
        assert "finder" in result.output
        assert "1000" in result.output

    def test_nearby_announces_recent_sightings(self, db_env):
        _, env = db_env
        runner.invoke(app, ["demo"], env=env)

        result = runner.invoke(
            app,
            ["nearby", "--lat", "40.01", "--lng", "-73.01", "--token", "tok", "--hours", "72"],
            env=env,
        )

        assert result.exit_code == EXIT_CODE_PASS
        assert "Announced 2 sightings" in result.output

    def test_nearby_nothing_recent(self, db_env):
        _, env = db_env
        runner.invoke(app, ["demo"], env=env)

        result = runner.invoke(
            app, ["nearby", "--lat", "40.01", "--lng", "-73.01", "--token", "tok", "--hours", "1"], env=env
        )

        assert result.exit_code == EXIT_CODE_PASS
        assert "No new sightings nearby." in result.output


class TestMatchCommand:

    def test_requires_exactly_one_id(self, mock_services):
        result = runner.invoke(app, ["match"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "exactly one" in result.output
        mock_services.orchestrator.run.assert_not_called()

    def test_rejects_both_ids(self, mock_services):
        result = runner.invoke(app, ["match", "--sighting", "s1", "--lost", "l1"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_displays_result(self, mock_services):
        mock_services.orchestrator.run.return_value = PipelineResult(
            run_id="abc123",
            request=MatchRequest(sighting_id="s1"),
            rate_limit=_limit(),
            state=PipelineState.DONE,
            search_path=SearchPath.SPATIAL,
            reports=[
                CandidateReport("l1", "s1", CandidateOutcome.ACCEPTED, confidence=85, reason="same nose"),
                CandidateReport("l2", "s1", CandidateOutcome.SKIPPED_PREFILTER, confidence=0, reason="colors"),
            ],
        )

        result = runner.invoke(app, ["match", "--sighting", "s1", "--user", "finder"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Pipeline run abc123" in result.output
        assert "Search path: spatial" in result.output
        assert "New matches: 1" in result.output
        request, user = mock_services.orchestrator.run.call_args.args
        assert request == MatchRequest(sighting_id="s1")
        assert user.user_id == "finder"
        mock_services.close.assert_called_once()

    def test_no_candidates(self, mock_services):
        mock_services.orchestrator.run.return_value = PipelineResult(
            run_id="abc123",
            request=MatchRequest(lost_animal_id="l1"),
            rate_limit=_limit(),
            state=PipelineState.DONE,
        )

        result = runner.invoke(app, ["match", "--lost", "l1"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No candidates found." in result.output

    def test_rate_limited(self, mock_services):
        mock_services.orchestrator.run.side_effect = RateLimitExceeded(_limit(allowed=False))

        result = runner.invoke(app, ["match", "--sighting", "s1"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Rate limited" in result.output
        mock_services.close.assert_called_once()


class TestAnalyzeCommand:

    def test_describes_image(self, mock_services):
        mock_services.rate_limiter.check_and_consume.return_value = _limit()
        mock_services.describer.describe.return_value = (
            {"animalType": "cat", "color": "white"},
            TokenUsage(prompt_tokens=900, completion_tokens=100),
            0.00325,
        )

        result = runner.invoke(app, ["analyze", "https://img/cat.jpg", "--user", "finder"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "animalType" in result.output
        assert "Tokens: 1000" in result.output
        mock_services.describer.describe.assert_called_once_with("https://img/cat.jpg", "finder", prompt=None)

    def test_rate_limited(self, mock_services):
        mock_services.rate_limiter.check_and_consume.return_value = _limit(allowed=False)

        result = runner.invoke(app, ["analyze", "https://img/cat.jpg"])

        assert result.exit_code == EXIT_CODE_FAIL
        mock_services.describer.describe.assert_not_called()

    def test_model_error(self, mock_services):
        mock_services.rate_limiter.check_and_consume.return_value = _limit()
        mock_services.describer.describe.side_effect = RuntimeError("upstream 503")

        result = runner.invoke(app, ["analyze", "https://img/cat.jpg"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "upstream 503" in result.output
