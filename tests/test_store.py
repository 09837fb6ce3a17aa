import time

import pytest

from core.catalog import Catalog, parse_catalog
from core.errors import AlreadyUsedReference
from core.store import IDLE, IN_BATTLE, OPPONENT, OPPONENT_ID, SessionStore, id_key


def test_opponent_record_exists_and_is_separate_from_users(store, catalog):
    opponent = store.get_opponent()
    assert opponent.is_opponent
    assert opponent.battle_state == IDLE

    # a user whose id happens to be "opponent" is its own record
    user = store.assign(OPPONENT_ID, catalog.get("gar"))
    assert not user.is_opponent
    assert store.get_opponent().assigned_creature is None
    assert store.get_principal(OPPONENT_ID, kind=OPPONENT).assigned_creature is None


def test_id_key_orders_snowflakes_numerically():
    assert id_key("999") < id_key("1000")
    assert sorted(["20", "3", "100"], key=id_key) == ["3", "20", "100"]


def test_cursor_only_moves_forward(store):
    assert store.get_cursor() is None
    assert store.advance_cursor("1000") == "1000"
    assert store.advance_cursor("999") == "1000"
    assert store.advance_cursor("1000") == "1000"
    assert store.advance_cursor("1001") == "1001"
    assert store.get_cursor() == "1001"


def test_cursor_survives_restart(tmp_path):
    db = str(tmp_path / "state.db")
    first = SessionStore(db)
    first.advance_cursor("1855000000000000001")
    first.close()

    second = SessionStore(db)
    try:
        assert second.get_cursor() == "1855000000000000001"
        assert second.get_opponent() is not None
    finally:
        second.close()


def test_recorded_health_is_floored_at_zero(store, catalog):
    store.assign("u1", catalog.get("neu"))
    store.record_turn("u1", -40, -5)
    user, opponent = store.get_principal("u1"), store.get_opponent()
    assert (user.current_health, opponent.current_health) == (0, 0)
    assert user.battle_state == IN_BATTLE


def test_purchase_reference_is_unique(store):
    store.add_owned("u1", "Gar", "0xabc")
    with pytest.raises(AlreadyUsedReference):
        store.add_owned("u2", "Neu", "0xabc")
    assert store.reference_owner("0xabc") == "u1"
    assert store.list_owned("u2") == []


def test_handled_journal_keeps_first_reply(store):
    first = store.record_handled("42", "hello", ["/tmp/a.png"])
    again = store.record_handled("42", "different")
    assert again.reply_text == first.reply_text == "hello"
    assert again.media == ["/tmp/a.png"]
    assert not again.replied

    assert store.note_delivery_failure("42") == 1
    assert store.note_delivery_failure("42") == 2
    store.mark_replied("42")
    assert store.get_handled("42").replied
    assert store.get_handled("43") is None


def test_reseeding_replaces_catalog(store):
    smaller = Catalog(
        parse_catalog(
            """
Solo:
  health: 300
  price: 0.5
  attack1: {name: Poke, damage: 10}
  attack2: {name: Shove, damage: 20}
"""
        )
    )
    assert store.seed_creatures(smaller) == ["Solo"]
    assert store.creature_names() == ["Solo"]


def test_prune_only_touches_entries_behind_the_cursor(store):
    for message_id in ("99", "100", "101"):
        store.record_handled(message_id, "reply")
        store.mark_replied(message_id)
    future = time.time() + 60

    assert store.prune_handled("100", older_than=future) == 2
    assert store.get_handled("99") is None
    assert store.get_handled("100") is None
    assert store.get_handled("101") is not None
    assert store.prune_handled("101", older_than=0) == 0
    assert store.prune_handled(None, older_than=future) == 0
