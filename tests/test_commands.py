import random
import re

import pytest

from core.commands import (
    Attack,
    BuyHelp,
    ConfirmPurchase,
    ListOwned,
    ListPrices,
    StartBattle,
    Unknown,
    mentioned_handles,
    parse_command,
    tokenize,
)
from core.errors import ValidationError

NAMES = ["Blizzard", "Curselord", "Gar", "Neu", "Turquoise"]


def parse(text):
    return parse_command(text, catalog_names=NAMES, rng=random.Random(3))


def test_tokenize_drops_mentions_and_punctuation():
    assert tokenize("@MentionMon_Bot  Attack1!  @friend, now.") == ["attack1", "now"]


def test_plain_buy_lists_prices_with_example():
    intent = parse("@mentionmon_bot buy")
    assert isinstance(intent, ListPrices)
    assert intent.example_creature in NAMES
    assert re.fullmatch(r"0x[0-9a-f]{64}", intent.example_hash)


def test_buy_with_extra_tokens_is_help():
    assert parse("@mentionmon_bot buy blizzard please") == BuyHelp()


def test_confirm_takes_the_two_following_tokens():
    intent = parse("@mentionmon_bot confirm Blizzard 0xABC123 thanks")
    assert intent == ConfirmPurchase(creature_name="blizzard", purchase_ref="0xabc123")


def test_confirm_missing_hash_is_a_validation_error():
    with pytest.raises(ValidationError) as excinfo:
        parse("@mentionmon_bot confirm blizzard")
    assert "confirm <creature_name> <transaction_hash>" in excinfo.value.message


def test_list():
    assert parse("@mentionmon_bot list") == ListOwned()


def test_battle_with_and_without_name():
    assert parse("@mentionmon_bot battle") == StartBattle()
    assert parse("@mentionmon_bot battle Gar") == StartBattle(creature_name="gar")


def test_attack1_wins_when_both_slots_present():
    assert parse("@mentionmon_bot attack2 or attack1?") == Attack(slot="attack1")
    assert parse("@mentionmon_bot attack2!") == Attack(slot="attack2")


def test_first_keyword_decides_intent():
    assert parse("@mentionmon_bot attack1 then battle") == Attack(slot="attack1")
    assert isinstance(parse("@mentionmon_bot battle now, attack1 later"), StartBattle)


def test_keywords_inside_words_do_not_match():
    assert parse("@mentionmon_bot battlestar buyer listing") == Unknown()


def test_handles_that_look_like_keywords_are_ignored():
    assert parse("@buy @battle hello") == Unknown()
    assert parse("") == Unknown()


def test_mentioned_handles_are_whole_tokens():
    assert mentioned_handles("@MentionMon_Bot, @friend hi") == {"@mentionmon_bot", "@friend"}
    assert mentioned_handles("email me at a@b.c or @") == set()
