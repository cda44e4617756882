# Shared survey constants: survey catalogue, category instructions, control items.
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple


# Survey identifiers a participant can choose from, in display order.
SURVEY_IDS: Tuple[str, ...] = ("1", "2", "3", "4", "5")


@dataclass(frozen=True)
class CategoryInstruction:
    category: str
    meaning: str
    examples: Tuple[str, ...]
    rating: str


# Instructions shown before a survey starts, one block per category.
CATEGORY_INSTRUCTIONS: Dict[str, CategoryInstruction] = {
    "IMPORTANCE": CategoryInstruction(
        "IMPORTANCE",
        "These words make the research sound important or urgent.",
        (
            "Early diagnosis is **essential** for improving patient survival rates.",
            "Reducing hospital infections is a **priority** for public health.",
            "Funding for vaccine research is **crucial** to prevent future outbreaks.",
        ),
        "Judge how strongly the word makes the research sound important or urgent.",
    ),
    "NOVELTY": CategoryInstruction(
        "NOVELTY",
        "These words make the research sound new or different from anything done before.",
        (
            "The team developed a **new** method for detecting rare cancers.",
            "This study offers an **unprecedented** view of brain activity during sleep.",
            "The drug uses an **innovative** delivery system to target specific cells.",
        ),
        "Judge how strongly the word makes the research seem original or different from existing work.",
    ),
    "RIGOUR": CategoryInstruction(
        "RIGOUR",
        "These words make the research sound careful, precise, and done to a high standard.",
        (
            "The trial was conducted in a **controlled** setting to ensure accurate results.",
            "Data were analysed using **careful** statistical methods.",
            "The researchers followed a **strict** protocol throughout the experiment.",
        ),
        "Judge how strongly the word promotes the idea that the research was carried out with high standards and precision.",
    ),
    "SCALE": CategoryInstruction(
        "SCALE",
        "These words make the research sound big in size, scope, or range.",
        (
            "The study included a **large-scale** survey of hospital patients.",
            "The outbreak affected a **vast** area of the country.",
            "The database contains a **huge** amount of genetic information.",
        ),
        "Judge how strongly the word makes the research seem large in scope, reach, or amount.",
    ),
    "UTILITY": CategoryInstruction(
        "UTILITY",
        "These words make the research sound useful, practical, and/or beneficial.",
        (
            "The new tool is **useful** for monitoring blood sugar levels at home.",
            "This app provides **practical** guidance for managing symptoms.",
            "The treatment has been shown to be **effective** in reducing pain.",
        ),
        "Judge how strongly the word makes the research or method sound helpful, beneficial, or applicable in practice.",
    ),
    "QUALITY": CategoryInstruction(
        "QUALITY",
        "These words make the people or environment involved in the research sound skilled, capable, or well regarded.",
        (
            "The hospital is known for its **skilled** surgical team.",
            "The lab is equipped with **dedicated** scanning technology.",
            "The team works in a **renowned** research institute.",
        ),
        "Judge how strongly the word suggests that the people, facilities, or organisation involved are of high standing or ability.",
    ),
    "ATTITUDE": CategoryInstruction(
        "ATTITUDE",
        "These words show a positive reaction or strong approval of the research.",
        (
            "The results are **exciting** for the future of cancer treatment.",
            "This finding is **remarkable** and may change clinical practice.",
            "The study offers an **inspiring** example of patient-led research.",
        ),
        "Judge how strongly the word shows enthusiasm, approval, or a positive emotional response to the research.",
    ),
    "PROBLEM": CategoryInstruction(
        "PROBLEM",
        "These words make an issue sound serious or in need of urgent attention.",
        (
            "Antibiotic resistance is an **alarming** global health threat.",
            "Shortages of medical staff are a **serious** concern for rural clinics.",
            "The rise in obesity is a **pressing** public health issue.",
        ),
        "Judge how strongly the word makes the problem seem severe, urgent, or demanding immediate action.",
    ),
}

SURVEY_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "1": ("ATTITUDE", "IMPORTANCE"),
    "2": ("QUALITY", "PROBLEM"),
    "3": ("NOVELTY", "RIGOUR"),
    "4": ("SCALE",),
    "5": ("UTILITY",),
}


# Control word sets per survey. Participants who rank these inconsistently
# are flagged downstream.
_ATTENTION_CHECK_WORDS: List[Tuple[str, str, str, str]] = [
    # Survey 1: attitude and importance
    ("boring", "tedious", "dull", "amazing"),
    ("trivial", "minor", "irrelevant", "essential"),
    ("optional", "unimportant", "helpful", "crucial"),
    # Survey 2: quality and problem
    ("expert", "incompetent", "skilled", "professional"),
    ("adequate", "mediocre", "average", "outstanding"),
    ("catastrophic", "devastating", "severe", "trivial"),
    # Survey 3: novelty and rigour
    ("ordinary", "common", "standard", "groundbreaking"),
    ("cutting-edge", "pioneering", "innovative", "outdated"),
    ("sloppy", "careless", "adequate", "meticulous"),
    ("flawless", "perfect", "precise", "unreliable"),
    # Survey 4: scale
    ("small", "limited", "tiny", "enormous"),
    ("enormous", "gigantic", "colossal", "minimal"),
    # Survey 5: utility
    ("useless", "ineffective", "impractical", "transformative"),
    ("perfect", "excellent", "outstanding", "useless"),
]

ATTENTION_CHECK_SETS: FrozenSet[FrozenSet[str]] = frozenset(
    frozenset(words) for words in _ATTENTION_CHECK_WORDS
)


# Sample questions used only when the participant explicitly continues
# without the survey files.
FALLBACK_QUESTIONS: List[Tuple[str, Tuple[str, str, str, str]]] = [
    ("degree of brightness", ("dim", "bright", "brilliant", "radiant")),
    ("speed of movement", ("slow", "moderate", "fast", "rapid")),
    ("emotional intensity", ("calm", "excited", "thrilled", "ecstatic")),
    ("level of difficulty", ("easy", "moderate", "challenging", "impossible")),
    ("temperature sensation", ("cool", "warm", "hot", "scorching")),
    ("volume of sound", ("quiet", "audible", "loud", "deafening")),
    ("physical strength", ("weak", "average", "strong", "powerful")),
    ("level of happiness", ("sad", "content", "happy", "ecstatic")),
    ("size of object", ("tiny", "small", "large", "enormous")),
    ("quality of taste", ("bland", "mild", "flavorful", "intense")),
]


# Demographic form labels, keyed by Participant field name.
DEMOGRAPHIC_FIELDS: Dict[str, str] = {
    "name": "Name",
    "age": "Age",
    "gender": "Gender",
    "country": "Country",
    "first_language": "First language",
}
DEMOGRAPHIC_GENDER_OPTIONS: List[str] = ["Female", "Male", "Non-binary", "Prefer not to say"]
DEMOGRAPHIC_AGE_MIN: int = 1
DEMOGRAPHIC_AGE_MAX: int = 120


# Submission defaults.
CHUNK_SIZE: int = 25
CHUNK_DELAY_SEC: float = 1.0
SUBMIT_TIMEOUT_SEC: float = 60.0
CHUNK_TIMEOUT_SEC: float = 30.0
SUBMIT_MAX_ATTEMPTS: int = 3
LOCAL_STORE_NAMESPACE: str = "surveyResponses"
EXPORT_FILE_PREFIX: str = "Word_Intensity_Survey"

# Row layout for direct Google Sheet writes.
SHEET_WORKSHEET_NAME: str = "Survey Responses"
SHEET_COLS: List[str] = [
    "Timestamp",
    "Survey",
    "Name",
    "Age",
    "Gender",
    "Country",
    "First Language",
    "Question #",
    "Meaning",
    "Most Intense",
    "Least Intense",
    "Is Example",
]

MISSING_SELECTION_MESSAGE: str = (
    "Please select both a MOST INTENSE and LEAST INTENSE word before continuing."
)
CONTACT_RESEARCHER_MESSAGE: str = (
    "Your responses could not be saved automatically. "
    "Please contact the researcher so your data can be recorded."
)
