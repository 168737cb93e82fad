"""
Unit tests for storage layer.

Tests schema creation, usage ledger, animal queries and profile lookups.
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timedelta

import pytest

from stray_match.core.geo import Coordinates
from stray_match.storage.animals import AnimalRepository, SearchTarget
from stray_match.storage.db import get_connection
from stray_match.storage.models import AnimalRecord, AnimalType, LostAnimalRecord, Profile, UsageEvent
from stray_match.storage.profiles import ProfileRepository
from stray_match.storage.repository import UsageRepository, insert_usage_event
from stray_match.storage.schema import initialize_schema

NOW = datetime(2024, 6, 1, 12, 0, 0)
ORIGIN = Coordinates(latitude=40.0, longitude=-73.0)


def make_event(user_id="u1", timestamp=NOW, feature="lost_animal_match", success=True):
    return UsageEvent(
        timestamp=timestamp,
        user_id=user_id,
        feature=feature,
        model="gpt-4o",
        prompt_tokens=100,
        completion_tokens=50,
        total_tokens=150,
        cost=0.00075,
        success=success,
        request_id="req_1",
    )


def make_sighting(id, location="POINT(-73.01 40.01)", animal_type=AnimalType.CAT, spotted_at=NOW, color="white"):
    return AnimalRecord(
        id=id,
        user_id="finder",
        animal_type=animal_type,
        location=location,
        photo_ref=f"https://example.org/{id}.jpg",
        spotted_at=spotted_at,
        color=color,
    )


def make_lost(id, location="POINT(-73.0 40.0)", animal_type=AnimalType.CAT, status="active", created_at=NOW):
    return LostAnimalRecord(
        id=id,
        owner_id="owner",
        name="Whiskers",
        animal_type=animal_type,
        location=location,
        photo_ref=f"https://example.org/{id}.jpg",
        created_at=created_at,
        status=status,
        color="white",
        distinctive_features=("pink nose", "notched ear"),
    )


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify every table is created."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
                tables = {row[0] for row in cursor.fetchall()}
            finally:
                conn.close()

            for table in ("profiles", "auth_tokens", "animals", "lost_animals", "lost_animal_matches", "ai_usage"):
                assert table in tables

    def test_schema_is_idempotent(self):
        """Initializing twice keeps existing rows."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            insert_usage_event(make_event(), db_path)
            initialize_schema(db_path)

            assert len(UsageRepository(db_path).get_recent_events()) == 1

    def test_match_pair_is_unique(self):
        """The matches table rejects a second row for the same pair."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                insert = (
                    "INSERT INTO lost_animal_matches "
                    "(lost_animal_id, sighting_id, confidence_score, match_reason, created_at) "
                    "VALUES ('l1', 's1', 90, 'same cat', '2024-06-01T12:00:00')"
                )
                conn.execute(insert)
                with pytest.raises(sqlite3.IntegrityError):
                    conn.execute(insert)
            finally:
                conn.close()


class TestUsageRepository:
    """Test the append-only usage ledger."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repository = UsageRepository(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_insert_and_fetch_event(self):
        """Test an inserted event reads back unchanged."""
        event = make_event()
        insert_usage_event(event, self.db_path)

        events = self.repository.get_recent_events()
        assert events == [event]

    def test_count_since_counts_window_and_reports_oldest(self):
        """Only events at or after the cutoff count."""
        for seconds_ago in (90, 50, 10):
            insert_usage_event(make_event(timestamp=NOW - timedelta(seconds=seconds_ago)), self.db_path)
        insert_usage_event(make_event(user_id="other", timestamp=NOW), self.db_path)

        count, oldest = self.repository.count_since("u1", NOW - timedelta(seconds=60))

        assert count == 2
        assert oldest == NOW - timedelta(seconds=50)

    def test_count_since_empty(self):
        count, oldest = self.repository.count_since("nobody", NOW - timedelta(days=1))
        assert count == 0
        assert oldest is None

    def test_failed_events_still_count(self):
        """Failed attempts use quota too."""
        insert_usage_event(make_event(success=False), self.db_path)
        count, _ = self.repository.count_since("u1", NOW - timedelta(minutes=1))
        assert count == 1

    def test_recent_events_filters_and_orders(self):
        insert_usage_event(make_event(timestamp=NOW - timedelta(hours=2)), self.db_path)
        insert_usage_event(make_event(timestamp=NOW, feature="analyze_animal"), self.db_path)
        insert_usage_event(make_event(user_id="u2", timestamp=NOW - timedelta(hours=1)), self.db_path)

        events = self.repository.get_recent_events(user_id="u1")
        assert [e.timestamp for e in events] == [NOW, NOW - timedelta(hours=2)]

        events = self.repository.get_recent_events(feature="analyze_animal")
        assert len(events) == 1
        assert events[0].feature == "analyze_animal"

        assert len(self.repository.get_recent_events(limit=1)) == 1


class TestAnimalRepository:
    """Test sighting and lost-report queries."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repository = AnimalRepository(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_lost_report_round_trip(self):
        lost = make_lost("l1")
        self.repository.insert_lost_animal(lost)

        assert self.repository.get_lost_animal("l1") == lost
        assert self.repository.get_lost_animal("missing") is None

    def test_sighting_round_trip(self):
        sighting = make_sighting("s1")
        self.repository.insert_sighting(sighting)

        assert self.repository.get_sighting("s1") == sighting
        assert self.repository.get_sighting("missing") is None

    def test_find_nearby_applies_radius_and_type(self):
        self.repository.insert_sighting(make_sighting("near-cat", location="POINT(-73.01 40.01)"))
        self.repository.insert_sighting(make_sighting("near-dog", location="POINT(-73.01 40.01)", animal_type=AnimalType.DOG))
        self.repository.insert_sighting(make_sighting("far-cat", location="POINT(-73.0 41.5)"))

        records = self.repository.find_nearby(SearchTarget.SIGHTINGS, ORIGIN, 50, AnimalType.CAT)

        assert [r.id for r in records] == ["near-cat"]

    def test_find_nearby_orders_nearest_first(self):
        self.repository.insert_sighting(make_sighting("ten-km", location="POINT(-73.0 40.09)"))
        self.repository.insert_sighting(make_sighting("one-km", location="POINT(-73.0 40.009)"))

        records = self.repository.find_nearby(SearchTarget.SIGHTINGS, ORIGIN, 50, AnimalType.CAT)

        assert [r.id for r in records] == ["one-km", "ten-km"]

    def test_find_nearby_skips_undecodable_locations(self):
        self.repository.insert_sighting(make_sighting("broken", location="somewhere in Brooklyn"))
        self.repository.insert_sighting(make_sighting("ok"))

        records = self.repository.find_nearby(SearchTarget.SIGHTINGS, ORIGIN, 50, AnimalType.CAT)

        assert [r.id for r in records] == ["ok"]

    def test_find_nearby_respects_since(self):
        self.repository.insert_sighting(make_sighting("old", spotted_at=NOW - timedelta(days=40)))
        self.repository.insert_sighting(make_sighting("recent", spotted_at=NOW - timedelta(days=10)))

        records = self.repository.find_nearby(
            SearchTarget.SIGHTINGS, ORIGIN, 50, AnimalType.CAT, since=NOW - timedelta(days=30)
        )

        assert [r.id for r in records] == ["recent"]

    def test_lost_reports_are_limited_to_active(self):
        self.repository.insert_lost_animal(make_lost("active"))
        self.repository.insert_lost_animal(make_lost("found", status="found"))

        nearby = self.repository.find_nearby(SearchTarget.LOST_REPORTS, ORIGIN, 50, AnimalType.CAT)
        scanned = self.repository.scan(SearchTarget.LOST_REPORTS, AnimalType.CAT)

        assert [r.id for r in nearby] == ["active"]
        assert [r.id for r in scanned] == ["active"]

    def test_scan_ignores_location_and_orders_newest_first(self):
        self.repository.insert_sighting(make_sighting("broken", location=None, spotted_at=NOW - timedelta(days=1)))
        self.repository.insert_sighting(make_sighting("far", location="POINT(10.0 50.0)", spotted_at=NOW))
        self.repository.insert_sighting(make_sighting("dog", animal_type=AnimalType.DOG))

        records = self.repository.scan(SearchTarget.SIGHTINGS, AnimalType.CAT)

        assert [r.id for r in records] == ["far", "broken"]

    def test_scan_limit(self):
        for i in range(5):
            self.repository.insert_sighting(make_sighting(f"s{i}", spotted_at=NOW - timedelta(hours=i)))

        assert len(self.repository.scan(SearchTarget.SIGHTINGS, AnimalType.CAT, limit=3)) == 3


class TestProfileRepository:
    """Test profile and token lookups."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.now = NOW
        self.repository = ProfileRepository(self.db_path, clock=lambda: self.now)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_upsert_and_get_profile(self):
        self.repository.upsert_profile(Profile(id="u1", push_token="tok"))
        self.repository.upsert_profile(Profile(id="u1", push_token="tok2", is_supporter=True))

        profile = self.repository.get_profile("u1")
        assert profile == Profile(id="u1", push_token="tok2", is_supporter=True)
        assert self.repository.get_push_token("u1") == "tok2"

    def test_unknown_profile(self):
        assert self.repository.get_profile("nobody") is None
        assert self.repository.get_push_token("nobody") is None

    def test_resolve_token(self):
        self.repository.upsert_profile(Profile(id="u1"))
        self.repository.add_token("abc", "u1")

        assert self.repository.resolve_token("abc") == "u1"
        assert self.repository.resolve_token("nope") is None

    def test_expired_token_is_rejected(self):
        self.repository.upsert_profile(Profile(id="u1"))
        self.repository.add_token("abc", "u1", expires_at=NOW + timedelta(minutes=5))

        assert self.repository.resolve_token("abc") == "u1"
        self.now = NOW + timedelta(minutes=5)
        assert self.repository.resolve_token("abc") is None


class TestProfileTier:
    """Test tier derivation from profile flags."""

    @pytest.mark.parametrize("is_supporter,is_admin,expected", [
        (False, False, "free"),
        (True, False, "supporter"),
        (False, True, "admin"),
        (True, True, "admin"),
    ])
    def test_tier(self, is_supporter, is_admin, expected):
        profile = Profile(id="u1", is_supporter=is_supporter, is_admin=is_admin)
        assert profile.tier.value == expected
