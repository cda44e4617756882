from __future__ import annotations

from typing import Any, Callable

import streamlit as st


def _outcome_cache_key(attempt_id: str) -> str:
    return f"submission_outcome_{attempt_id}"


def get_outcome_once(
    attempt_id: str, submit_fn: Callable[..., Any], *args: Any, **kwargs: Any
) -> Any:
    """
    Run a submission exactly once per attempt_id.
    Streamlit reruns of the same page get the cached outcome back instead of resubmitting.
    """
    cache_key = _outcome_cache_key(attempt_id)
    if cache_key not in st.session_state:
        st.session_state[cache_key] = submit_fn(*args, **kwargs)
    return st.session_state[cache_key]


def forget_outcomes() -> None:
    for key in [k for k in st.session_state.keys() if str(k).startswith("submission_outcome_")]:
        del st.session_state[key]
