"""Tests for whole-word keyword matching."""

import pytest

from ..text_matching import WordMatcher, matches_word


class TestWordMatcher:
    """Test cases for WordMatcher."""

    @pytest.mark.parametrize("text", [
        "The boy is crying",
        "Crying",
        "cry",
        "she cryed once",
        "(cry)",
        "why cry?",
    ])
    def test_matches_word_and_inflections(self, text):
        assert matches_word(text, "cry")

    @pytest.mark.parametrize("text", [
        "acrylic paint",
        "outcry",
        "decrypt",
        "",
    ])
    def test_rejects_inner_substrings(self, text):
        assert not matches_word(text, "cry")

    def test_case_insensitive_keyword(self):
        assert matches_word("the dog barked", "DOG")

    def test_special_characters_are_literal(self):
        matcher = WordMatcher("c++")
        assert matcher("I like c++ a lot")
        assert not matcher("I like cpp")

        dot = WordMatcher("a.b")
        assert dot("see a.b here")
        assert not dot("see axb here")

    def test_non_text_never_matches(self):
        matcher = WordMatcher("cry")
        assert not matcher(None)
        assert not matcher(3.0)

    def test_blank_keyword_matches_nothing(self):
        assert not WordMatcher("  ").matches("anything")

    def test_keyword_is_normalized(self):
        assert WordMatcher("  Cry ").keyword == "cry"
