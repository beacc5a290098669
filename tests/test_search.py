"""Tests for semantic and lexical search."""

from kbindex.initiatives import INITIATIVES_INDEX_KEY, INITIATIVES_PREFIX
from kbindex.search import extract_snippet


ONBOARDING_DESC = "Improve the first-week experience"
PRICING_DESC = "New onboarding flow for enterprise pricing plan"


def _seed(kb):
    kb.add_initiative("Onboarding Revamp", ONBOARDING_DESC, "alice")
    kb.add_initiative("Pricing Refresh", PRICING_DESC, "bob")


class TestSemanticSearch:

    def test_returns_hits(self, kb):
        kb.add_item("Guide", "How to get started")
        results = kb.search_semantic("getting started")
        assert len(results) == 1
        assert results[0].title == "Guide"

    def test_empty_query(self, kb):
        kb.add_item("Guide", "How to get started")
        assert kb.search_semantic("   ") == []

    def test_vector_failure_degrades_to_empty(self, kb, vector_index):
        kb.add_item("Guide", "How to get started")
        vector_index.fail_query = True
        assert kb.search_semantic("started") == []

    def test_embedding_failure_degrades_to_empty(self, kb, embedder):
        kb.add_item("Guide", "How to get started")
        embedder.fail = True
        assert kb.search_semantic("started") == []

    def test_limit(self, kb):
        for i in range(5):
            kb.add_item(f"Doc {i}", f"content {i}")
        assert len(kb.search_semantic("content", limit=3)) == 3

    def test_search_context(self, kb):
        assert kb.search_context("anything") is None
        kb.add_item("Guide", "How to get started")
        text = kb.search_context("started")
        assert text.startswith("## Relevant Knowledge Base Excerpts\n\n### Guide (")
        assert "% match)\nHow to get started" in text


class TestLexicalSearch:

    def test_name_match_beats_description_match(self, kb):
        _seed(kb)
        results = kb.search_lexical("onboarding")
        assert [(r.initiative.name, r.score) for r in results] == [
            ("Onboarding Revamp", 10),
            ("Pricing Refresh", 5),
        ]
        assert results[0].snippet == "Onboarding Revamp"
        assert results[1].snippet == PRICING_DESC

    def test_word_scores_add_up(self, kb):
        _seed(kb)
        results = kb.search_lexical("pricing refresh plan")
        assert len(results) == 1
        # name words: pricing, refresh; description words: pricing, plan
        assert results[0].score == 3 + 3 + 1 + 1
        assert results[0].snippet == "..." + PRICING_DESC[5:]

    def test_long_description_snippet_is_cut(self, kb):
        desc = "x" * 100 + " budget " + "y" * 100
        kb.add_initiative("Finance", desc, "erin")
        result = kb.search_lexical("budget")[0]
        assert result.score == 5
        assert result.snippet == "..." + desc[71:157] + "..."

    def test_short_words_ignored(self, kb):
        _seed(kb)
        assert kb.search_lexical("an of") == []

    def test_no_match(self, kb):
        _seed(kb)
        assert kb.search_lexical("zebra") == []

    def test_ghost_scores_on_name_only(self, kb, kv):
        kb.add_initiative("Budget Review", "Quarterly numbers", "frank")
        kv.delete(INITIATIVES_PREFIX + "budget-review")
        results = kb.search_lexical("quarterly budget")
        assert len(results) == 1
        assert results[0].score == 3
        assert results[0].snippet == "Budget Review"

    def test_limit_and_order(self, kb):
        for i in range(4):
            kb.add_initiative(f"Launch {i}", "launch plan", "gina")
        kb.add_initiative("Other", "mentions launch once", "gina")
        results = kb.search_lexical("launch", limit=3)
        assert len(results) == 3
        assert all(r.score == 10 for r in results)

    def test_combined(self, kb):
        _seed(kb)
        kb.add_item("Onboarding Guide", "Day one checklist")
        combined = kb.search("onboarding")
        assert combined.documents[0].title == "Onboarding Guide"
        assert len(combined.initiatives) == 2

    def test_combined_keeps_documents_when_lexical_fails(self, kb, kv):
        kb.add_item("Onboarding Guide", "Day one checklist")
        kv.put(INITIATIVES_INDEX_KEY, "not json")
        combined = kb.search("onboarding")
        assert combined.documents[0].title == "Onboarding Guide"
        assert combined.initiatives == []


class TestSnippet:

    def test_no_ellipsis_when_whole_text_fits(self):
        assert extract_snippet("short text", 0, 5) == "short text"

    def test_ellipsis_on_both_sides(self):
        text = "a" * 50 + "match" + "b" * 100
        snippet = extract_snippet(text, 50, 55)
        assert snippet == "..." + text[20:105] + "..."
