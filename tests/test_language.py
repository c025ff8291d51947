"""Tests for language preference and name fallback."""

from digitransit_mcp.ordering import LANGUAGE_ORDER, Language, fallback_chain, language_rank, pick_best_name


def test_language_order():
    assert [lang.value for lang in LANGUAGE_ORDER] == ["fi", "en", "sv", "default"]


def test_language_rank_unknown_last():
    assert language_rank("fi") < language_rank("en") < language_rank("sv") < language_rank("default")
    assert language_rank("de") > language_rank("default")
    assert language_rank(None) == language_rank("de")


def test_fallback_chain_moves_preferred_first():
    assert fallback_chain("sv") == ["sv", "fi", "en", "default"]
    assert fallback_chain(None) == ["fi", "en", "sv", "default"]
    assert fallback_chain("de") == ["fi", "en", "sv", "default"]


def test_pick_best_name_prefers_requested_language():
    names = {"fi": "Rautatientori", "sv": "Järnvägstorget", "default": "Rautatientori, Helsinki"}

    assert pick_best_name(names, "sv") == ("Järnvägstorget", "sv")
    assert pick_best_name(names) == ("Rautatientori", "fi")


def test_pick_best_name_falls_back():
    names = {"fi": None, "en": "", "default": "Label"}

    assert pick_best_name(names, Language.EN.value) == ("Label", "default")


def test_pick_best_name_uses_other_languages_last():
    assert pick_best_name({"de": "Bahnhof"}) == ("Bahnhof", "de")
    assert pick_best_name({}) is None
