from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cipherpost.core.errors import PrincipalNotFoundError, SelfSearchError
from cipherpost.crud import search_history as crud_history
from cipherpost.models.search_history import SearchHistory
from cipherpost.schemas.search_history import SearchType


@pytest.fixture()
def people(register):
    return register("alice", district="Uttara"), register("bob", district="Banani"), register("carol")


def test_record_search_encrypts_query(db, field_cipher, people) -> None:
    alice, bob, _ = people
    out = crud_history.record_search(db, field_cipher, alice.id, bob.id, " bob@example.com ", SearchType.EMAIL)

    assert (out.searcher_id, out.searched_user_id) == (alice.id, bob.id)
    assert out.search_query == "bob@example.com"
    assert out.search_type is SearchType.EMAIL

    row = db.get(SearchHistory, out.id)
    assert row.search_query != "bob@example.com"
    assert field_cipher.decrypt_field(row.search_query) == "bob@example.com"


def test_record_search_defaults(db, field_cipher, people) -> None:
    alice, bob, _ = people
    out = crud_history.record_search(db, field_cipher, alice.id, bob.id)
    assert out.search_query == ""
    assert out.search_type is SearchType.GENERAL
    assert db.get(SearchHistory, out.id).search_query is None


def test_record_search_rejections(db, field_cipher, people) -> None:
    alice, _, _ = people
    with pytest.raises(SelfSearchError):
        crud_history.record_search(db, field_cipher, alice.id, alice.id, "alice")
    with pytest.raises(PrincipalNotFoundError):
        crud_history.record_search(db, field_cipher, alice.id, 404, "ghost")
    with pytest.raises(ValueError):
        crud_history.record_search(db, field_cipher, alice.id, 2, "x", search_type="phone")
    assert db.query(SearchHistory).count() == 0


def test_who_searched_for_me_and_my_history(db, field_cipher, people) -> None:
    alice, bob, carol = people
    crud_history.record_search(db, field_cipher, alice.id, bob.id, "bob")
    crud_history.record_search(db, field_cipher, carol.id, bob.id, "banani", SearchType.DISTRICT)
    crud_history.record_search(db, field_cipher, alice.id, carol.id, "carol", SearchType.USERNAME)

    on_bob = crud_history.who_searched_for_me(db, field_cipher, bob.id)
    assert on_bob.total_items == 2
    assert [r.counterpart.username for r in on_bob.items] == ["carol", "alice"]
    assert on_bob.items[1].counterpart.district == "Uttara"
    assert on_bob.items[1].counterpart.email == "alice@example.com"

    mine = crud_history.my_search_history(db, field_cipher, alice.id)
    assert [r.counterpart.username for r in mine.items] == ["carol", "bob"]
    assert [r.search_query for r in mine.items] == ["carol", "bob"]

    assert crud_history.my_search_history(db, field_cipher, bob.id).items == []


def test_history_pagination(db, field_cipher, people) -> None:
    alice, bob, _ = people
    for i in range(5):
        crud_history.record_search(db, field_cipher, alice.id, bob.id, f"q{i}")

    first = crud_history.my_search_history(db, field_cipher, alice.id, page=1, limit=2)
    last = crud_history.my_search_history(db, field_cipher, alice.id, page=3, limit=2)
    assert (first.total_items, first.total_pages, first.items_per_page) == (5, 3, 2)
    assert [r.search_query for r in first.items] == ["q4", "q3"]
    assert [r.search_query for r in last.items] == ["q0"]

    with pytest.raises(ValueError):
        crud_history.my_search_history(db, field_cipher, alice.id, page=0)
    with pytest.raises(ValueError):
        crud_history.my_search_history(db, field_cipher, alice.id, limit=1000)


def test_search_analytics(db, field_cipher, people) -> None:
    alice, bob, carol = people
    now = datetime.now(timezone.utc)
    old = crud_history.record_search(db, field_cipher, alice.id, bob.id, "old")
    crud_history.record_search(db, field_cipher, alice.id, carol.id, "new")
    crud_history.record_search(db, field_cipher, bob.id, alice.id, "back")

    row = db.get(SearchHistory, old.id)
    row.created_at = now - timedelta(days=10)
    db.commit()

    stats = crud_history.search_analytics(db, alice.id, now=now)
    assert (stats.total_searches, stats.recent_searches) == (2, 1)
    assert (stats.total_times_searched, stats.recent_searches_on_me) == (1, 1)

    bob_stats = crud_history.search_analytics(db, bob.id, now=now)
    assert (bob_stats.total_times_searched, bob_stats.recent_searches_on_me) == (1, 0)
