import pytest

from groupchat.domain.messaging.moderation import BannedWordEvaluator, contains_banned_word, find_matches


@pytest.mark.parametrize(
    "text",
    [
        "this is not spam-ish content",
        "SPAM",
        "antispam measures",
        "sp",  # token contained in the banned word
    ],
)
def test_bidirectional_substring_matches(text):
    assert contains_banned_word(text, ["spam"])


def test_clean_text_does_not_match():
    assert not contains_banned_word("hello there friends", ["spam", "scam"])


def test_matching_is_case_insensitive_on_both_sides():
    assert find_matches("Buy CHEAP stuff", ["Cheap"]) == ["cheap"]


def test_empty_inputs_never_match():
    assert find_matches("", ["spam"]) == []
    assert find_matches("spam", []) == []
    assert find_matches("spam", ["", "   "]) == []
    assert find_matches("   ", ["spam"]) == []


def test_reports_each_banned_word_once():
    evaluator = BannedWordEvaluator()
    assert evaluator.violations("spam spam scam", ["spam", "scam", "SPAM"]) == ["spam", "scam"]
