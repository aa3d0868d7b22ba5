"""
Repair rules for malformed model output.

Each rule is a pure function dict -> dict that fixes one thing and leaves the
rest alone. repair_question runs QUESTION_RULES in order; an item is kept
only if it is salvageable (a real question and a non-empty answer) and the
repaired result passes the strict schema.
"""

import random
import re
from typing import Any, Callable, Dict, List, Optional

Question = Dict[str, Any]
Card = Dict[str, Any]

MIN_OPTIONS = 4
MIN_QUESTION_CHARS = 10
MIN_EXPLANATION_CHARS = 10

TRUE_FALSE = ["True", "False"]
GENERIC_DISTRACTORS = [
    "None of the above",
    "All of the above",
    "Not stated in the material",
    "Cannot be determined from the material",
]

QUESTION_ALIASES = {
    "question": ("question", "question_text", "text", "prompt", "stem"),
    "options": ("options", "choices", "answers", "alternatives"),
    "answer": ("answer", "correct_answer", "correctAnswer", "correct_option", "correct", "solution"),
    "explanation": ("explanation", "rationale", "reason", "justification"),
    "hint": ("hint", "clue"),
    "type": ("type", "question_type", "questionType", "kind"),
    "id": ("id", "question_id"),
}

CARD_ALIASES = {
    "front": ("front", "term", "question", "prompt", "q"),
    "back": ("back", "definition", "answer", "explanation", "a"),
    "id": ("id", "card_id"),
}

TYPE_ALIASES = {
    "mcq": "mcq",
    "multiple_choice": "mcq",
    "multiple-choice": "mcq",
    "multiplechoice": "mcq",
    "fill_blank": "fill_blank",
    "fill_in_the_blank": "fill_blank",
    "fill-in-the-blank": "fill_blank",
    "short_response": "short_response",
    "short_answer": "short_response",
    "true_false": "true_false",
    "true/false": "true_false",
    "truefalse": "true_false",
    "boolean": "true_false",
    "scenario": "scenario",
}

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _pick(raw: dict, aliases) -> Any:
    for key in aliases:
        if key in raw and raw[key] not in (None, ""):
            return raw[key]
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, dict):
        value = value.get("text") or value.get("value") or ""
    return str(value).strip()


# ─── Question rules ───────────────────────────────────────────────────────────

def normalize_keys(q: Question) -> Question:
    """Map alternative field names onto the canonical ones"""
    out = {}
    for canonical, aliases in QUESTION_ALIASES.items():
        value = _pick(q, aliases)
        if value is not None:
            out[canonical] = value
    return out


def coerce_text_fields(q: Question) -> Question:
    """Strings everywhere; options as a de-duplicated list; letter/index answers resolved"""
    out = dict(q)
    raw_options = q.get("options") or []
    if isinstance(raw_options, dict):
        raw_options = list(raw_options.values())
    elif isinstance(raw_options, str):
        raw_options = [raw_options]
    options: List[str] = []
    for opt in raw_options:
        text = _text(opt)
        if text and text.lower() not in {o.lower() for o in options}:
            options.append(text)
    out["options"] = options

    answer = q.get("answer")
    if isinstance(answer, int) and not isinstance(answer, bool) and 0 <= answer < len(options):
        answer = options[answer]
    answer = _text(answer)
    # "B" or "B)" style answers refer to an option label
    label = re.fullmatch(r"([A-Da-d])[).:]?", answer)
    if label and options and not any(o.lower() == answer.lower() for o in options):
        index = ord(label.group(1).upper()) - ord("A")
        if index < len(options):
            answer = options[index]
    out["answer"] = answer

    for key in ("question", "explanation", "hint", "type", "id"):
        if key in q:
            out[key] = _text(q[key])
    return out


def _is_true_false_answer(answer: str) -> bool:
    return answer.lower() in ("true", "false")


def infer_type(q: Question) -> Question:
    out = dict(q)
    given = TYPE_ALIASES.get((q.get("type") or "").lower().replace(" ", "_"))
    if given:
        out["type"] = given
    elif _is_true_false_answer(q.get("answer", "")):
        out["type"] = "true_false"
    elif "___" in q.get("question", ""):
        out["type"] = "fill_blank"
    elif len(q.get("options") or []) >= 2:
        out["type"] = "mcq"
    else:
        out["type"] = "short_response"
    return out


def ensure_answer_in_options(q: Question) -> Question:
    """The answer must appear verbatim among the options"""
    out = dict(q)
    answer = q.get("answer", "")
    options = list(q.get("options") or [])
    if not answer:
        return out
    for opt in options:
        if opt.lower() == answer.lower():
            out["answer"] = opt
            return out
    if len(options) >= MIN_OPTIONS:
        options[-1] = answer
    else:
        options.append(answer)
    out["options"] = options
    return out


def numeric_distractors(answer: str) -> List[str]:
    """Neighbouring numbers, keeping any surrounding text ("42 km" -> "41 km")"""
    match = _NUMBER.search(answer)
    if not match:
        return []
    raw = match.group(0)
    value = float(raw)
    is_int = "." not in raw
    step = 1 if is_int else 10 ** -len(raw.split(".")[1])
    candidates = [value - step, value + step, value + 2 * step, value * 2 if value else value + 3 * step]
    out = []
    for candidate in candidates:
        number = str(int(candidate)) if is_int else f"{candidate:.{len(raw.split('.')[1])}f}"
        text = answer[:match.start()] + number + answer[match.end():]
        if text != answer and text not in out:
            out.append(text)
    return out


def backfill_options(q: Question) -> Question:
    """Pad options to MIN_OPTIONS: numeric neighbours first, then generic fillers"""
    out = dict(q)
    if q.get("type") == "true_false":
        out["options"] = list(TRUE_FALSE)
        answer = q.get("answer", "")
        if _is_true_false_answer(answer):
            out["answer"] = answer.capitalize()
        return out

    options = list(q.get("options") or [])
    answer = q.get("answer", "")
    if len(options) >= MIN_OPTIONS:
        return out
    seen = {o.lower() for o in options}
    for candidate in numeric_distractors(answer) + GENERIC_DISTRACTORS:
        if len(options) >= MIN_OPTIONS:
            break
        if candidate.lower() not in seen:
            options.append(candidate)
            seen.add(candidate.lower())
    out["options"] = options
    return out


def shuffle_options(q: Question) -> Question:
    """Deterministic shuffle keyed on the question text so the answer is not always last"""
    out = dict(q)
    if q.get("type") == "true_false":
        return out
    options = list(q.get("options") or [])
    random.Random(q.get("question", "")).shuffle(options)
    out["options"] = options
    return out


def fill_explanation(q: Question) -> Question:
    out = dict(q)
    if len(q.get("explanation") or "") < MIN_EXPLANATION_CHARS:
        out["explanation"] = f"The correct answer is: {q.get('answer', '')}"
    return out


def fill_hint(q: Question) -> Question:
    out = dict(q)
    if q.get("hint"):
        return out
    if q.get("type") == "true_false":
        out["hint"] = "Check whether every part of the statement matches the material."
    elif q.get("options"):
        out["hint"] = "Rule out the options that contradict the material first."
    else:
        out["hint"] = f"The answer starts with \"{q.get('answer', '')[:1]}\"."
    return out


QUESTION_RULES: List[Callable[[Question], Question]] = [
    normalize_keys,
    coerce_text_fields,
    ensure_answer_in_options,
    infer_type,
    backfill_options,
    shuffle_options,
    fill_explanation,
    fill_hint,
]


def is_salvageable(q: Question) -> bool:
    return len(q.get("question") or "") >= MIN_QUESTION_CHARS and bool(q.get("answer"))


def repair_question(raw: Any) -> Optional[Question]:
    """Run every rule; None when the item cannot be turned into a question"""
    if not isinstance(raw, dict):
        return None
    if not is_salvageable(coerce_text_fields(normalize_keys(raw))):
        return None
    q = raw
    for rule in QUESTION_RULES:
        q = rule(q)
    return q


# ─── Flashcard rules ──────────────────────────────────────────────────────────

def normalize_card_keys(card: Card) -> Card:
    out = {}
    for canonical, aliases in CARD_ALIASES.items():
        value = _pick(card, aliases)
        if value is not None:
            out[canonical] = _text(value)
    return out


def repair_flashcard(raw: Any) -> Optional[Card]:
    if not isinstance(raw, dict):
        return None
    card = normalize_card_keys(raw)
    if not card.get("front") or not card.get("back"):
        return None
    return card
