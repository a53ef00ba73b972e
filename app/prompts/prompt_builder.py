# app/prompts/prompt_builder.py

from typing import Dict, List, Sequence

from app.memory.types import MapSummary, RetrievalResult
from app.prompts.system_prompts import NO_EXCERPTS_PLACEHOLDER


def build_sources_block(results: Sequence[RetrievalResult], label: str = "SOURCE ") -> str:
    """
    Number retrieved excerpts for citation.

    label "SOURCE " gives "SOURCE 1 (pages 3-4):"; label "A" gives "A1 (pages 3-4):".
    """

    return "\n\n".join(
        f"{label}{i} (pages {r.chunk.page_start}-{r.chunk.page_end}):\n{r.chunk.text}"
        for i, r in enumerate(results, 1)
    )


def build_chat_messages(
    question: str,
    results: Sequence[RetrievalResult],
    history: Sequence[Dict[str, str]],
) -> List[Dict[str, str]]:
    """History turns followed by one user turn carrying the sources and question."""

    user_turn = {
        "role": "user",
        "content": f"DOCUMENT SOURCES:\n\n{build_sources_block(results)}\n\nQUESTION: {question}",
    }

    return [*history, user_turn]


def build_compare_messages(
    mode: str,
    task: str,
    results_a: Sequence[RetrievalResult],
    results_b: Sequence[RetrievalResult],
) -> List[Dict[str, str]]:

    context_a = build_sources_block(results_a, label="A") or NO_EXCERPTS_PLACEHOLDER
    context_b = build_sources_block(results_b, label="B") or NO_EXCERPTS_PLACEHOLDER

    content = (
        f"MODE: {mode}\n\n"
        f"DOCUMENT A EXCERPTS:\n\n{context_a}\n\n"
        f"DOCUMENT B EXCERPTS:\n\n{context_b}\n\n"
        f"TASK: {task}"
    )

    return [{"role": "user", "content": content}]


# ============================================================
# SUMMARIZATION
# ============================================================

def build_map_batch_prompt(batch: Sequence[RetrievalResult]) -> str:

    excerpts = [
        f"EXCERPT {i} (chunkId={r.chunk.id}, pages {r.chunk.page_start}-{r.chunk.page_end}):\n"
        f"{r.chunk.text}"
        for i, r in enumerate(batch, 1)
    ]

    return "\n\n".join(
        [
            "Summarize each excerpt independently.",
            "For each excerpt: extract up to 3 key findings/claims, plus any quantitative "
            "results (metrics, effect sizes) if present.",
            "Write short bullets inside a single string.",
            'If excerpt is background-only, start with "Background/Setup:" and keep it brief.',
            "",
            *excerpts,
        ]
    )


def build_map_single_prompt(item: RetrievalResult) -> str:

    return (
        f"EXCERPT (pages {item.chunk.page_start}-{item.chunk.page_end}):\n"
        f"{item.chunk.text}\n\n"
        "Task: extract up to 3 key findings/claims, plus any quantitative results "
        "(metrics, effect sizes) if present. Write in short bullets. If excerpt is "
        'background-only, say "Background/Setup" and summarize briefly.'
    )


def build_reduce_prompt(question: str, summaries: Sequence[MapSummary]) -> str:

    reduce_input = "\n\n".join(
        f"SUMMARY {i} (pp. {s.page_start}-{s.page_end}):\n{s.summary}"
        for i, s in enumerate(summaries, 1)
    )

    return (
        f"Paper question: {question or 'What are the key findings?'}\n\n"
        f"Chunk summaries:\n\n{reduce_input}\n\n"
        "Produce:\n"
        "1) Key findings (8-12 bullets)\n"
        "2) Evidence & numbers (bullets; include metrics if present)\n"
        "3) Limitations / caveats\n"
        "4) One-paragraph plain-English takeaway\n"
        "If the summaries do not contain findings, say so."
    )
