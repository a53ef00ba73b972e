# tests/test_policy.py
import pytest

from app.config import MAX_TOTAL_CONTEXT_CHARS, MIN_SIMILARITY
from app.memory.retriever import SearchOptions
from app.memory.types import Chunk, RetrievalResult
from app.workflow.policy import (
    CompareMode,
    QuestionIntent,
    build_compare_retrieval_query,
    build_retrieval_query,
    classify_intent,
    compare_search_options,
    default_compare_prompt,
    is_request_too_large_error,
    retrieve_for_chat,
    retrieve_for_compare,
    sample_evenly,
    select_confident,
    select_summary_chunks,
    tightened_search_options,
    top_k_for_mode,
    unique_by_chunk_id,
)


def _result(chunk_id, score, text="text"):
    return RetrievalResult(
        chunk=Chunk(id=chunk_id, doc_id="doc", page_start=1, page_end=1, text=text),
        score=score,
    )


class TestIntentClassifier:

    @pytest.mark.parametrize("question", [
        "Summarize the paper",
        "What are the key findings?",
        "Give me the main results",
        "tl;dr please",
        "Can you summarise section 2?",
        "I need a summary",
        "key takeaways for managers",
    ])
    def test_summary_requests(self, question):
        assert classify_intent(question) == QuestionIntent.SUMMARY_REQUEST

    @pytest.mark.parametrize("question", [
        "elaborate on that",
        "Explain the second point",
        "Tell me more",
        "as you said earlier, why?",
        "how does it work",
    ])
    def test_follow_ups(self, question):
        assert classify_intent(question) == QuestionIntent.FOLLOW_UP

    @pytest.mark.parametrize("question", [
        "What was the quarterly revenue?",
        "Who wrote the report",
        "",
    ])
    def test_plain_questions(self, question):
        assert classify_intent(question) == QuestionIntent.PLAIN

    def test_summarize_only_counts_as_prefix(self):
        assert classify_intent("how do I summarize data") == QuestionIntent.PLAIN

    def test_summary_wins_over_follow_up(self):
        assert classify_intent("summarize that") == QuestionIntent.SUMMARY_REQUEST


class TestRetrievalQuery:

    def test_plain_question_is_unchanged(self):
        messages = [{"role": "assistant", "content": "earlier answer"}]

        assert build_retrieval_query("What is revenue?", messages) == "What is revenue?"

    def test_follow_up_without_history_is_unchanged(self):
        assert build_retrieval_query("elaborate on that", []) == "elaborate on that"

    def test_follow_up_appends_previous_turns(self):
        messages = [
            {"role": "user", "content": "How do plants make food?"},
            {"role": "assistant", "content": "Through photosynthesis in chloroplasts."},
        ]

        query = build_retrieval_query("elaborate on that", messages)

        assert query.startswith("elaborate on that")
        assert "Context from conversation (for retrieval only):" in query
        assert "Previous user question: How do plants make food?" in query
        assert "Previous assistant answer: Through photosynthesis in chloroplasts." in query

    def test_previous_turns_are_clamped(self):
        messages = [
            {"role": "user", "content": "u" * 2000},
            {"role": "assistant", "content": "a" * 2000},
        ]

        query = build_retrieval_query("tell me more", messages)

        assert "u" * 600 in query and "u" * 601 not in query
        assert "a" * 900 in query and "a" * 901 not in query

    def test_follow_up_retrieval_uses_conversation(self, add_document):
        entry = add_document(
            "bio",
            "Cell walls are rigid structures around the membrane.",
            "Photosynthesis in leaves captures sunlight to make sugar.",
            "Roots absorb water and minerals from soil.",
        )
        options = SearchOptions(top_k=1)
        messages = [
            {"role": "user", "content": "How do leaves work?"},
            {"role": "assistant", "content": "Leaves rely on photosynthesis."},
        ]

        _, raw = retrieve_for_chat(entry, "elaborate on that", [], options)
        query, expanded = retrieve_for_chat(entry, "elaborate on that", messages, options)

        assert "photosynthesis" in query
        assert expanded[0].chunk.id == "bio:1"
        assert raw[0].chunk.id != expanded[0].chunk.id


class TestChatOptions:

    def test_tightened_options_shrink_budgets(self):
        tight = tightened_search_options(SearchOptions(top_k=5, max_chunk_chars=1200, max_total_chars=6500))

        assert tight.top_k == 3
        assert tight.max_chunk_chars == 720
        assert tight.max_total_chars == 3900

    def test_tightened_options_have_lower_bounds(self):
        tight = tightened_search_options(SearchOptions(top_k=1, max_chunk_chars=100, max_total_chars=100))

        assert tight.top_k == 1
        assert tight.max_chunk_chars == 500
        assert tight.max_total_chars == 2500

    def test_select_confident_keeps_strong_results(self):
        results = [_result("a", 0.5), _result("b", 0.05)]

        assert [r.chunk.id for r in select_confident(results, 0.1)] == ["a"]

    def test_select_confident_passes_weak_results_through(self):
        results = [_result("a", 0.05), _result("b", 0.01)]

        assert select_confident(results, 0.1) == results

    def test_select_confident_empty(self):
        assert select_confident([], 0.1) == []


class TestComparePolicy:

    def test_broad_modes_get_more_results(self):
        assert top_k_for_mode(CompareMode.LITERAL, 5) == 8
        assert top_k_for_mode(CompareMode.STRUCTURE, 9) == 10
        assert top_k_for_mode(CompareMode.CONTENT, 5) == 5

    def test_each_side_gets_half_the_budget(self):
        options = compare_search_options(CompareMode.METHODOLOGY)

        assert options.max_total_chars == MAX_TOTAL_CONTEXT_CHARS // 2
        assert options.min_score == MIN_SIMILARITY

    def test_keywords_appended_for_focused_modes(self):
        query = build_compare_retrieval_query(CompareMode.METHODOLOGY, "Compare methods")

        assert query.startswith("Compare methods")
        assert "Keywords:" in query
        assert build_compare_retrieval_query(CompareMode.CUSTOM, "my task") == "my task"

    def test_default_prompts_exist_for_every_mode(self):
        for mode in CompareMode:
            assert default_compare_prompt(mode)

    def test_literal_mode_finds_differing_threshold(self, add_document):
        shared = [
            "Section one introduces the product family and its history.",
            "Warranty coverage lasts two years from the purchase date.",
        ]
        entry_a = add_document("pump-a", *shared, "The pump shall operate below 40 units of pressure.")
        entry_b = add_document("pump-b", *shared, "The pump shall operate below 45 units of pressure.")

        results_a, results_b = retrieve_for_compare(
            entry_a, entry_b, CompareMode.LITERAL, default_compare_prompt(CompareMode.LITERAL)
        )

        assert "pump-a:2" in [r.chunk.id for r in results_a]
        assert "pump-b:2" in [r.chunk.id for r in results_b]


class TestSummarySelection:

    def test_sample_evenly(self):
        chunks = list(range(10))

        assert sample_evenly(chunks, 5) == [0, 2, 4, 6, 8]
        assert sample_evenly(chunks, 20) == chunks
        assert sample_evenly(chunks, 0) == []

    def test_unique_by_chunk_id_keeps_first(self):
        results = [_result("a", 0.9), _result("b", 0.5), _result("a", 0.0)]

        unique = unique_by_chunk_id(results)

        assert [(r.chunk.id, r.score) for r in unique] == [("a", 0.9), ("b", 0.5)]

    def test_selection_is_bounded_and_unique(self, add_document):
        entry = add_document("long", *[f"page {i} discusses topic{i} findings" for i in range(40)])

        selected = select_summary_chunks(entry, max_selected_chunks=20, per_chunk_chars=100)
        ids = [r.chunk.id for r in selected]

        # top matches plus the part of the even sample they did not already cover
        assert 12 <= len(selected) <= 20
        assert len(set(ids)) == len(ids)
        assert "long:35" in ids
        assert all(len(r.chunk.text) <= 100 for r in selected)

    def test_small_document_selects_everything(self, add_document):
        entry = add_document("short", "alpha findings", "beta results", "gamma conclusion")

        selected = select_summary_chunks(entry)

        assert sorted(r.chunk.id for r in selected) == ["short:0", "short:1", "short:2"]


class TestOversizeDetection:

    class _Error(Exception):
        def __init__(self, message, status_code=None):
            super().__init__(message)
            self.status_code = status_code

    @pytest.mark.parametrize("message", [
        "Request too large for model",
        "Error code: 413",
        "Rate limit reached on tokens per minute (TPM)",
    ])
    def test_markers(self, message):
        assert is_request_too_large_error(self._Error(message))

    def test_status_code(self):
        assert is_request_too_large_error(self._Error("payload", status_code=413))

    def test_other_errors(self):
        assert not is_request_too_large_error(self._Error("invalid api key", status_code=401))
