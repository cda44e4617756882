#!/usr/bin/env python3
from __future__ import annotations

import logging
import os
from typing import Optional

import streamlit as st

from word_intensity.constants import (
    CONTACT_RESEARCHER_MESSAGE,
    DEMOGRAPHIC_AGE_MAX,
    DEMOGRAPHIC_AGE_MIN,
    DEMOGRAPHIC_GENDER_OPTIONS,
    SURVEY_CATEGORIES,
    SURVEY_IDS,
)
from word_intensity.errors import InvalidTransitionError, LoadError, ValidationError
from word_intensity.export import export_bytes, export_filename, responses_csv
from word_intensity.question_bank import QuestionBank
from word_intensity.state_machine import SurveyState, SurveyStateMachine
from word_intensity.submission import SubmissionPipeline
from word_intensity.utils.persistence import SurveySettings, load_settings
from word_intensity.utils.submission_guard import forget_outcomes, get_outcome_once
from word_intensity.utils.ui_helpers import (
    render_category_instructions,
    render_progress,
    render_word_grid,
)

logging.basicConfig(
    level=os.getenv("SURVEY_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------
# Streamlit page config & global styling
# --------------------------------------------------------------------------------------

st.set_page_config(
    page_title="Word Intensity Survey",
    layout="centered",
    initial_sidebar_state="collapsed",
)

COMPACT_CSS = """
<style>
  #MainMenu, header, footer, [data-testid="stToolbar"] { display: none !important; }
  [data-testid="stSidebar"] { display: none !important; }
  .block-container { padding-top: 1.5rem !important; }
  .meaning-box {
    font-size: 1.3rem; font-weight: 600; text-align: center;
    padding: 14px; margin-bottom: 18px; border-radius: 10px; background: #f1f5fb;
  }
</style>
"""

INSTRUCTIONS_MD = """
In each question you will see a **meaning** and **four words** that express it.

1. Click the word that expresses the meaning **most intensely**.
2. Then click the word that expresses it **least intensely**.

Click a selected word again to undo it. Both choices are required before you
can move to the next question.
"""


# --------------------------------------------------------------------------------------
# Session bootstrap
# --------------------------------------------------------------------------------------


def ensure_session_state() -> None:
    ss = st.session_state
    if "settings" not in ss:
        ss.settings = load_settings()
    if "machine" not in ss:
        settings: SurveySettings = ss.settings
        ss.machine = SurveyStateMachine(QuestionBank(settings.question_source))
    if "pipeline" not in ss:
        ss.pipeline = SubmissionPipeline.from_settings(ss.settings)
    if "flash" not in ss:
        ss.flash = None


def rerun() -> None:
    st.rerun()


def show_flash() -> None:
    message: Optional[str] = st.session_state.flash
    if message:
        st.error(message)
        st.session_state.flash = None


def guarded(action, *args, **kwargs) -> bool:
    """Run a state-machine action; validation problems are shown on the same page."""
    try:
        action(*args, **kwargs)
    except ValidationError as exc:
        st.session_state.flash = str(exc)
        return False
    except InvalidTransitionError as exc:
        logger.warning("Ignored out-of-order action: %s", exc)
        return False
    return True


def submit_attempt(machine: SurveyStateMachine) -> None:
    """Submit once per attempt; an unexpected failure leaves the retry page in charge."""
    attempt_id = str(machine.session.submit_attempts + 1)
    with st.spinner("Submitting your responses..."):
        try:
            get_outcome_once(attempt_id, machine.submit, st.session_state.pipeline)
        except ValidationError as exc:
            st.session_state.flash = str(exc)
        except Exception:
            logger.exception("Submission attempt %s failed unexpectedly", attempt_id)


# --------------------------------------------------------------------------------------
# Rendering helpers for each state
# --------------------------------------------------------------------------------------


def render_instructions(machine: SurveyStateMachine) -> None:
    st.title("Word Intensity Survey")
    st.markdown(INSTRUCTIONS_MD)
    st.markdown(
        "**Example:** for *level of spiciness in food* with the words "
        "`mild`, `medium`, `hot`, `spicy`, you might pick **hot** as most intense "
        "and **mild** as least intense."
    )
    if st.button("Continue", use_container_width=True):
        guarded(machine.begin)
        rerun()


def render_demographics(machine: SurveyStateMachine) -> None:
    st.header("About you")
    show_flash()
    with st.form("demographics"):
        name = st.text_input("Name")
        age = st.text_input(f"Age ({DEMOGRAPHIC_AGE_MIN}-{DEMOGRAPHIC_AGE_MAX})")
        gender = st.selectbox("Gender", ["", *DEMOGRAPHIC_GENDER_OPTIONS])
        country = st.text_input("Country")
        first_language = st.text_input("First language")
        submitted = st.form_submit_button("Continue", use_container_width=True)
    if submitted:
        guarded(machine.submit_demographics, name, age, gender, country, first_language)
        rerun()


def render_survey_selection(machine: SurveyStateMachine) -> None:
    st.header("Choose a survey")
    show_flash()
    labels = {sid: f"Survey {sid}: {' & '.join(SURVEY_CATEGORIES.get(sid, ()))}" for sid in SURVEY_IDS}
    current = machine.session.survey_id
    choice = st.radio(
        "Survey",
        list(SURVEY_IDS),
        index=list(SURVEY_IDS).index(current) if current in SURVEY_IDS else None,
        format_func=lambda sid: labels[sid],
        label_visibility="collapsed",
    )
    if choice and choice != current:
        guarded(machine.choose_survey, choice)
        rerun()

    if machine.session.survey_id:
        with st.expander("Instructions for this survey", expanded=True):
            render_category_instructions(machine.session.survey_id)

    load_failed = st.session_state.get("load_failed", False)
    if st.button("Start survey", use_container_width=True, disabled=not machine.session.survey_id):
        try:
            machine.start_questions()
            st.session_state.load_failed = False
        except LoadError:
            st.session_state.load_failed = True
            st.session_state.flash = (
                "Error loading survey questions. Please try again or select a different survey."
            )
        except ValidationError as exc:
            st.session_state.flash = str(exc)
        rerun()

    if load_failed:
        st.warning("The question file could not be loaded. You can continue with sample questions instead.")
        if st.button("Use sample questions", use_container_width=True):
            guarded(machine.start_questions, use_fallback=True)
            st.session_state.load_failed = False
            rerun()


def render_question(machine: SurveyStateMachine) -> None:
    session = machine.session
    question = machine.current_question()
    render_progress(machine.store.completion_count(), machine.question_count, session.cursor)
    if session.using_fallback_questions:
        st.caption("Sample questions")
    st.markdown(f'<div class="meaning-box">"{question.meaning}"</div>', unsafe_allow_html=True)
    show_flash()

    clicked = render_word_grid(session.cursor, question.words, machine.current_response())
    if clicked is not None:
        guarded(machine.select_word, clicked)
        rerun()

    prev_col, next_col = st.columns(2)
    with prev_col:
        if st.button("Previous", use_container_width=True, disabled=session.cursor == 0):
            guarded(machine.previous)
            rerun()
    with next_col:
        label = "Finish" if machine.is_last_question else "Next"
        if st.button(
            label,
            use_container_width=True,
            disabled=not machine.store.is_complete(session.cursor),
        ):
            guarded(machine.next)
            rerun()


def render_results_view(machine: SurveyStateMachine) -> None:
    batch = machine.build_batch(include_incomplete=True)
    with st.expander("Review my answers", expanded=False):
        for item in batch.responses:
            st.markdown(
                f"**Q{item.question_number}: {item.meaning}**  \n"
                f"Most intense: {item.most_intense or 'Not selected'}  \n"
                f"Least intense: {item.least_intense or 'Not selected'}"
            )
        st.download_button(
            "Download answers (CSV)",
            responses_csv(batch.responses),
            file_name="word_intensity_survey_results.csv",
            mime="text/csv",
        )


def render_completion(machine: SurveyStateMachine) -> None:
    st.header("All questions answered")
    st.write("Thank you! Press the button below to submit your responses.")
    show_flash()
    render_results_view(machine)

    back_col, submit_col = st.columns(2)
    with back_col:
        if st.button("Back to questions", use_container_width=True):
            guarded(machine.back_to_questions)
            rerun()
    with submit_col:
        if st.button("Complete Survey", type="primary", use_container_width=True):
            submit_attempt(machine)
            rerun()


def render_retry_prompt(machine: SurveyStateMachine) -> None:
    outcome = machine.session.outcome
    st.header("Your responses could not be sent")
    if outcome is None:
        st.error(CONTACT_RESEARCHER_MESSAGE)
        if machine.session.last_error:
            st.caption(machine.session.last_error)
        if st.button("Try again", type="primary", use_container_width=True):
            submit_attempt(machine)
            rerun()
        return

    if outcome.partial:
        st.warning(
            f"Sending stopped at part {outcome.failed_chunk} of {outcome.total_chunks}. "
            "Earlier parts may already have been saved."
        )
    if outcome.error:
        st.caption(outcome.error)

    batch = machine.build_batch()
    participant = batch.participant
    if outcome.fallback_saved:
        st.info("A backup copy of your responses was saved. Please download it as well.")
        fmt = st.session_state.settings.export_format
        st.download_button(
            "Download backup",
            export_bytes(participant, batch.survey_id, batch.responses, fmt=fmt),
            file_name=export_filename(participant, fmt),
            use_container_width=True,
        )
    else:
        st.error(CONTACT_RESEARCHER_MESSAGE)

    retry_col, done_col = st.columns(2)
    with retry_col:
        if st.button("Try again", type="primary", use_container_width=True):
            submit_attempt(machine)
            rerun()
    with done_col:
        if outcome.fallback_saved and st.button("Finish with backup", use_container_width=True):
            guarded(machine.accept_fallback)
            rerun()


def render_success(machine: SurveyStateMachine) -> None:
    outcome = machine.session.outcome
    st.header("Thank you for taking part!")
    if outcome is not None and outcome.remote_ok:
        st.success("Your responses have been recorded.")
    else:
        st.info("Your backup copy is saved. Please contact the researcher so it can be recorded.")
    if st.button("Start a new participant", use_container_width=True):
        machine.start_new_participant()
        forget_outcomes()
        rerun()


def render_reset_control(machine: SurveyStateMachine) -> None:
    if machine.state in (SurveyState.INSTRUCTIONS, SurveyState.DEMOGRAPHICS, SurveyState.SUCCESS):
        return
    with st.expander("Start over", expanded=False):
        st.write("This clears all of your responses and returns to the first form.")
        if st.button("Reset all responses", key="reset_survey"):
            machine.reset()
            forget_outcomes()
            st.session_state.load_failed = False
            rerun()


# --------------------------------------------------------------------------------------
# App entrypoint
# --------------------------------------------------------------------------------------

ensure_session_state()
st.markdown(COMPACT_CSS, unsafe_allow_html=True)

machine: SurveyStateMachine = st.session_state.machine
state = machine.state
if state == SurveyState.INSTRUCTIONS:
    render_instructions(machine)
elif state == SurveyState.DEMOGRAPHICS:
    render_demographics(machine)
elif state == SurveyState.SURVEY_SELECTION:
    render_survey_selection(machine)
elif state == SurveyState.QUESTIONING:
    render_question(machine)
elif state == SurveyState.COMPLETION:
    render_completion(machine)
elif state == SurveyState.RETRY_PROMPT:
    render_retry_prompt(machine)
elif state == SurveyState.SUCCESS:
    render_success(machine)
else:
    st.info("Submitting your responses...")

render_reset_control(machine)
