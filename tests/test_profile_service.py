from datetime import timedelta

import pytest

from dreamweaver.services import profile_service
from dreamweaver.services.quota_service import ProfileMissing


def test_ensure_user_profile_creates_zeroed_ledger(fake_db, now):
    profile = profile_service.ensure_user_profile("new-u1", "dreamer@example.com", db=fake_db, now=now)

    stored = fake_db.data("users", "new-u1")
    assert stored == profile
    assert stored["subscriptionStatus"] == "free"
    assert stored["dailyUsage"] == {"videos": 0, "dreams": 0, "lastReset": now}
    assert stored["analyticsSummary"]["totalVideos"] == 0
    assert stored["analyticsSummary"]["totalDreams"] == 0
    assert stored["preferences"]["language"] == "en"


def test_ensure_user_profile_is_idempotent(fake_db, seed_user, now):
    seed_user("known-u1", tier="premium", videos=2, total_videos=5)
    before = fake_db.data("users", "known-u1")

    profile = profile_service.ensure_user_profile(
        "known-u1", "known-u1@example.com", db=fake_db, now=now + timedelta(hours=1)
    )

    assert profile == before
    assert fake_db.data("users", "known-u1") == before


def test_ensure_user_profile_backfills_ledger_and_email(fake_db, now):
    fake_db.seed("users", "legacy-u1", {
        "email": "old@example.com",
        "subscriptionStatus": "premium_plus",
        "dailyUsage": {"videos": 4},
    })

    profile = profile_service.ensure_user_profile("legacy-u1", "new@example.com", db=fake_db, now=now)

    assert profile["email"] == "new@example.com"
    assert profile["subscriptionStatus"] == "premium_plus"
    assert profile["dailyUsage"] == {"videos": 4, "dreams": 0, "lastReset": now}
    assert profile["analyticsSummary"]["totalVideos"] == 0


def test_ensure_user_profile_survives_concurrent_creation(fake_db, now, monkeypatch):
    original_create = profile_service.users_repo.create_doc

    def racing_create(db, uid, data):
        original_create(db, uid, dict(data, email="first@example.com"))
        original_create(db, uid, data)

    monkeypatch.setattr(profile_service.users_repo, "create_doc", racing_create)

    profile = profile_service.ensure_user_profile("race-u1", "", db=fake_db, now=now)

    assert profile["email"] == "first@example.com"


def test_usage_summary_applies_rollover_without_writing(fake_db, seed_user, now, yesterday):
    seed_user("prem-u1", tier="premium", videos=3, dreams=2, last_reset=yesterday, total_videos=12)
    before = fake_db.data("users", "prem-u1")

    summary = profile_service.get_usage_summary("prem-u1", db=fake_db, now=now)

    assert summary["videosToday"] == 0
    assert summary["dreamsToday"] == 0
    assert summary["remainingToday"] == 3
    assert summary["dailyVideoLimit"] == 3
    assert summary["maxClipSeconds"] == 20
    assert summary["totalVideos"] == 12
    assert summary["freeVideoAvailable"] is False
    assert fake_db.data("users", "prem-u1") == before


def test_usage_summary_for_free_tier(seed_user, fake_db, now):
    seed_user("free-u1", tier="free")

    summary = profile_service.get_usage_summary("free-u1", db=fake_db, now=now)

    assert summary["freeVideoAvailable"] is True
    assert summary["remainingToday"] == 0
    assert summary["maxClipSeconds"] == 15


def test_usage_summary_missing_profile(fake_db, now):
    with pytest.raises(ProfileMissing):
        profile_service.get_usage_summary("ghost", db=fake_db, now=now)
