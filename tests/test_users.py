from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlmodel import Session

from oauth_session.core import MissingClaimError
from oauth_session.models import User


def test_upsert_creates_then_updates_single_row(user_store) -> None:
    first = user_store.upsert("a@x.com", "a", {"email": "a@x.com", "v": 1}, subject="s1")
    second = user_store.upsert("a@x.com", "b", {"email": "a@x.com", "v": 2}, subject="s1")

    assert first.created is True
    assert second.created is False
    assert first.user.id == second.user.id
    assert user_store.count() == 1

    user = user_store.find_by_email("a@x.com")
    assert user.image_url == "b"
    assert user.profile == {"email": "a@x.com", "v": 2}
    assert user.sign_in_count == 2


def test_upsert_canonicalizes_email(user_store) -> None:
    user_store.upsert("  Mixed@Example.COM ", None, {})
    result = user_store.upsert("mixed@example.com", None, {})

    assert result.created is False
    assert result.user.email == "mixed@example.com"
    assert user_store.find_by_email("MIXED@example.com") is not None
    assert user_store.count() == 1


def test_upsert_keeps_subject_when_new_one_missing(user_store) -> None:
    user_store.upsert("a@x.com", None, {}, subject="s1")
    result = user_store.upsert("a@x.com", None, {}, subject=None)
    assert result.user.provider_sub == "s1"


def test_upsert_rejects_blank_email(user_store) -> None:
    with pytest.raises(MissingClaimError):
        user_store.upsert("   ", None, {})
    assert user_store.count() == 0


def test_concurrent_first_login_creates_exactly_one_row(user_store) -> None:
    n = 8

    def attempt(i: int):
        return user_store.upsert("race@x.com", f"img-{i}", {"attempt": i}, subject="race-sub")

    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(pool.map(attempt, range(n)))

    assert sum(1 for r in results if r.created) == 1
    assert sum(1 for r in results if not r.created) == n - 1
    assert user_store.count() == 1
    assert user_store.find_by_email("race@x.com").sign_in_count == n


def test_find_by_email_missing_returns_none(user_store) -> None:
    assert user_store.find_by_email("nobody@x.com") is None
    assert user_store.find_by_email("") is None


def test_malformed_profile_reads_as_empty(user_store, engine) -> None:
    created = user_store.upsert("a@x.com", "u", {"email": "a@x.com"}).user
    with Session(engine) as session:
        row = session.get(User, created.id)
        row.user_profile = "{not json"
        session.add(row)
        session.commit()

    user = user_store.find_by_email("a@x.com")
    assert user.profile == {}
    assert user.to_public_dict()["user_profile"] == {}


def test_non_object_profile_reads_as_empty() -> None:
    assert User(email="a@x.com", user_profile="[1, 2]").profile == {}
