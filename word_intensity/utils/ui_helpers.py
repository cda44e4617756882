# Shared Streamlit widgets for the word-ranking pages.
from __future__ import annotations

import hashlib
import re
from typing import Iterable, Optional

import streamlit as st

from ..constants import CATEGORY_INSTRUCTIONS, SURVEY_CATEGORIES
from ..responses import Response

_KEY_SANITIZER = re.compile(r"[^0-9a-zA-Z_]+")

MOST_LABEL = "MOST intense"
LEAST_LABEL = "LEAST intense"


def _sanitize_key(raw: str) -> str:
    cleaned = _KEY_SANITIZER.sub("_", raw).strip("_")
    if not cleaned:
        cleaned = "word"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    if len(cleaned) > 100:
        digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:8]
        cleaned = f"{cleaned[:91]}_{digest}"
    return cleaned


def word_label(word: str, response: Optional[Response]) -> str:
    if response is not None and word == response.most_intense:
        return f"{word}  ·  {MOST_LABEL}"
    if response is not None and word == response.least_intense:
        return f"{word}  ·  {LEAST_LABEL}"
    return word


def render_word_grid(
    question_index: int,
    words: Iterable[str],
    response: Optional[Response],
    *,
    key_prefix: str = "word",
) -> Optional[str]:
    """
    Render the four words as a 2x2 button grid.

    Returns the clicked word for this rerun, or None when nothing was clicked.
    """
    clicked: Optional[str] = None
    word_list = list(words)
    columns = st.columns(2)
    for idx, word in enumerate(word_list):
        role_set = response is not None and word in (response.most_intense, response.least_intense)
        with columns[idx % 2]:
            if st.button(
                word_label(word, response),
                key=_sanitize_key(f"{key_prefix}_{question_index}_{idx}_{word}"),
                type="primary" if role_set else "secondary",
                use_container_width=True,
            ):
                clicked = word
    return clicked


def render_progress(completed: int, total: int, cursor: int) -> None:
    st.progress(completed / total if total else 0.0)
    st.caption(f"Question {cursor + 1} of {total}")


def render_category_instructions(survey_id: str) -> None:
    for category in SURVEY_CATEGORIES.get(survey_id, ()):
        instruction = CATEGORY_INSTRUCTIONS.get(category)
        if instruction is None:
            continue
        st.subheader(instruction.category)
        st.markdown(f"**Meaning:** {instruction.meaning}")
        st.markdown("\n".join(f"- {example}" for example in instruction.examples))
        st.markdown(f"**How to rate:** {instruction.rating}")
