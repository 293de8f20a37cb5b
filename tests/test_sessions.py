from __future__ import annotations

from datetime import timedelta

from sqlmodel import Session, select

from oauth_session.core.time import utcnow
from oauth_session.models import SessionRecord


def _expire(engine, session_id: str) -> None:
    with Session(engine) as session:
        record = session.get(SessionRecord, session_id)
        record.expires_at = utcnow() - timedelta(seconds=1)
        session.add(record)
        session.commit()


def test_create_load_save_destroy(session_store) -> None:
    session_id = session_store.create({"principal": "x"})
    assert len(session_id) >= 32
    assert session_store.load(session_id) == {"principal": "x"}

    session_store.save(session_id, {"principal": "y", "new_user": True})
    assert session_store.load(session_id) == {"principal": "y", "new_user": True}

    session_store.destroy(session_id)
    assert session_store.load(session_id) is None
    # destroying twice is a no-op
    session_store.destroy(session_id)


def test_unknown_id_loads_as_none(session_store) -> None:
    assert session_store.load("does-not-exist") is None
    assert session_store.touch("does-not-exist") is False


def test_expired_session_is_dropped_on_load(session_store, engine) -> None:
    session_id = session_store.create({"principal": "x"})
    _expire(engine, session_id)

    assert session_store.load(session_id) is None
    with Session(engine) as session:
        assert session.get(SessionRecord, session_id) is None


def test_touch_extends_expiry(session_store, engine) -> None:
    session_id = session_store.create({"principal": "x"})
    _expire(engine, session_id)

    assert session_store.touch(session_id) is True
    assert session_store.load(session_id) == {"principal": "x"}


def test_purge_expired_only_removes_stale_rows(session_store, engine) -> None:
    live = session_store.create({"a": 1})
    stale = session_store.create({"b": 2})
    _expire(engine, stale)

    assert session_store.purge_expired() == 1
    with Session(engine) as session:
        ids = set(session.exec(select(SessionRecord.id)).all())
    assert ids == {live}


def test_undecodable_data_loads_as_empty(session_store, engine) -> None:
    session_id = session_store.create({"a": 1})
    with Session(engine) as session:
        record = session.get(SessionRecord, session_id)
        record.data = "{oops"
        session.add(record)
        session.commit()

    assert session_store.load(session_id) == {}
