"""
Unit tests for narrative focus extraction.
"""

from src.insights.narrative import MAX_ITEM_LENGTH, parse_narrative


class TestSections:
    def test_markdown_heading_with_numbered_items(self):
        text = "## Focus areas\n1. Letter sounds\n2) Blending practice\n"
        assert parse_narrative(text) == ["Letter sounds", "Blending practice"]

    def test_colon_heading_with_bullets(self):
        text = "Recommendations:\n• Counting with objects\n* Short reading sessions"
        assert parse_narrative(text) == ["Counting with objects", "Short reading sessions"]

    def test_emphasis_is_stripped(self):
        text = "Recommendations:\n- **Letter sounds**"
        assert parse_narrative(text) == ["Letter sounds"]

    def test_section_ends_at_prose(self):
        text = "Recommendations:\n- Rhyming games\nThat covers it.\n- stray bullet"
        assert parse_narrative(text) == ["Rhyming games"]

    def test_bullets_without_heading_ignored(self):
        assert parse_narrative("- Just a note\n- Another one") == []


class TestPhrases:
    def test_inline_phrases(self):
        text = "We recommend short phonics drills. Also focus on number bonds."
        assert parse_narrative(text) == ["short phonics drills", "number bonds"]

    def test_suggest_practicing(self):
        assert parse_narrative("I suggest practicing sight words daily!") == ["sight words daily"]

    def test_duplicates_dropped_case_insensitively(self):
        assert parse_narrative("Focus on Counting. Later, focus on counting.") == ["Counting"]


class TestEdgeCases:
    def test_empty_text(self):
        assert parse_narrative("") == []
        assert parse_narrative("   \n ") == []
        assert parse_narrative(None) == []

    def test_plain_prose_yields_nothing(self):
        assert parse_narrative("The learner had a good week overall.") == []

    def test_long_items_truncated_on_word_boundary(self):
        item = " ".join(["phonics"] * 40)
        result = parse_narrative(f"Recommendations:\n- {item}")
        assert len(result) == 1
        assert len(result[0]) <= MAX_ITEM_LENGTH
        assert result[0].endswith("phonics")
