"""Tests for text normalization and ingredient line building."""
from recipevec.normalize import (
    build_ingredients_lines,
    normalize_ingredient_line,
    normalize_text,
    to_lines,
    truncate,
)


class TestNormalizeText:
    def test_collapses_whitespace_runs(self):
        assert normalize_text("  a \t b\n\n c  ") == "a b c"

    def test_non_breaking_space_becomes_ascii_space(self):
        assert normalize_text("1 cup  flour") == "1 cup flour"

    def test_none_and_empty(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""
        assert normalize_text("   ") == ""


class TestIngredientLines:
    def test_bullets_and_blank_lines(self):
        assert build_ingredients_lines("- Flour\n* 2 eggs\n\nSalt") == ["Flour", "2 eggs", "Salt"]

    def test_multiple_bullet_markers_are_stripped(self):
        assert normalize_ingredient_line("  •• 1   cup  milk ") == "1 cup milk"
        assert normalize_ingredient_line("-* butter") == "butter"

    def test_short_lines_dropped(self):
        assert build_ingredients_lines("ok\n- ab\nabc\r\nx") == ["abc"]

    def test_capped_at_300(self):
        text = "\n".join(f"item {i}" for i in range(500))
        lines = build_ingredients_lines(text)
        assert len(lines) == 300
        assert lines[0] == "item 0"
        assert lines[-1] == "item 299"

    def test_empty_input(self):
        assert build_ingredients_lines("") == []
        assert build_ingredients_lines(None) == []


class TestHelpers:
    def test_to_lines_handles_crlf(self):
        assert to_lines("a\r\n b \n\n") == ["a", "b"]

    def test_truncate(self):
        assert truncate("abcdef", 3) == "abc"
        assert truncate(None, 3) == ""
