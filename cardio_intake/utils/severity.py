"""Severity classification from follow-up answers.

Matching is deliberately permissive: a single keyword anywhere in the
answers is enough to raise the tier, so the classifier errs towards
over-triage.
"""

import re
from typing import Dict, Iterable, List, Mapping, Pattern, Union
from cardio_intake.models.triage import Severity

RED_FLAGS_CATEGORY = "red_flags"

AFFIRMATIVE_PATTERNS = [
    re.compile(r"\b(yes|yep|yeah|affirmative|true|certainly|of course)\b", re.I),
]

CRITICAL_PATTERNS: Dict[str, List[Pattern]] = {
    "severity_descriptor": [
        re.compile(r"\b(severe|sudden|tearing|crushing|unbearable|worst)\b", re.I),
    ],
    "autonomic": [
        re.compile(r"\b(profuse|heavy)\s+(sweating|diaphoresis)\b", re.I),
    ],
    "hemorrhage": [
        re.compile(r"\b(hemoptysis|blood\s+in\s+sputum|massive\s+bleeding)\b", re.I),
    ],
    "neurological": [
        re.compile(r"\b(syncope|fainted|loss\s+of\s+consciousness)\b", re.I),
        re.compile(r"\b(neurological\s+deficits|facial\s+droop|speech\s+difficulty)\b", re.I),
    ],
    "hypoxia": [
        re.compile(r"\b(hypoxia|very\s+low\s+oxygen)\b", re.I),
    ],
    "chest_pain_quality": [
        re.compile(r"\b(pressure|squeez(ing)?|tight(ness)?|radiat(e|ing))\b", re.I),
        re.compile(r"\b(jaw|arm|back)\b", re.I),
        re.compile(r"\b(nausea|vomiting|shortness\s+of\s+breath|dyspnea)\b", re.I),
    ],
}

RISK_FACTOR_PATTERNS: Dict[str, List[Pattern]] = {
    "hypertension": [
        re.compile(r"\b(hypertension|high\s+blood\s+pressure|bp\s*\d{2,3}/\d{2,3})\b", re.I),
    ],
    "diabetes": [re.compile(r"\b(diabetes|high\s+blood\s+sugar)\b", re.I)],
    "smoking": [re.compile(r"\b(smok(e|ing|er)|tobacco)\b", re.I)],
    "cholesterol": [re.compile(r"\b(high\s+cholesterol|hyperlipidemia)\b", re.I)],
    "obesity": [re.compile(r"\b(obese|obesity|overweight)\b", re.I)],
    "coronary_history": [
        re.compile(
            r"\b(family\s+history|coronary\s+artery\s+disease|cad|stent|angioplasty"
            r"|heart\s+attack|myocardial\s+infarction|mi)\b",
            re.I,
        ),
    ],
    "cardiopulmonary": [
        re.compile(r"\b(copd|asthma|heart\s+failure|valve\s+disease)\b", re.I),
    ],
}

Responses = Mapping[str, Union[List[str], str, None]]


def flatten_responses(responses_by_category: Responses) -> List[str]:
    """All answers as strings, category order preserved."""
    if not responses_by_category:
        return []
    flat: List[str] = []
    for value in responses_by_category.values():
        if isinstance(value, (list, tuple)):
            flat.extend(str(v) for v in value)
        elif value is not None:
            flat.append(str(value))
    return flat


def _iter_patterns(groups: Dict[str, List[Pattern]]) -> Iterable[Pattern]:
    for patterns in groups.values():
        yield from patterns


def matches_any(text: str, patterns: Iterable[Pattern]) -> bool:
    return any(p.search(text) for p in patterns)


def is_affirmative(text: str) -> bool:
    return matches_any(str(text), AFFIRMATIVE_PATTERNS)


def has_red_flags(responses_by_category: Responses) -> bool:
    """True if any answer in the red-flag category is affirmative or critical."""
    answers = (responses_by_category or {}).get(RED_FLAGS_CATEGORY)
    if not answers:
        return False
    if not isinstance(answers, (list, tuple)):
        answers = [str(answers)]

    return any(
        is_affirmative(answer) or matches_any(str(answer), _iter_patterns(CRITICAL_PATTERNS))
        for answer in answers
    )


def detect_indicators(text: str, groups: Dict[str, List[Pattern]]) -> List[str]:
    """Names of the keyword groups that match ``text``."""
    return [name for name, patterns in groups.items() if matches_any(text, patterns)]


def classify(symptom_name: str, responses_by_category: Responses) -> Severity:
    """
    Classify clinical urgency from follow-up answers.

    Args:
        symptom_name: Catalog name of the chief complaint
        responses_by_category: Answers keyed by follow-up category

    Returns:
        CRITICAL if a red flag is affirmed or a critical indicator appears,
        MEDIUM if a cardiovascular risk factor appears, LOW otherwise.
    """
    corpus = "\n".join(flatten_responses(responses_by_category))

    if has_red_flags(responses_by_category) or matches_any(
        corpus, _iter_patterns(CRITICAL_PATTERNS)
    ):
        return Severity.CRITICAL

    if matches_any(corpus, _iter_patterns(RISK_FACTOR_PATTERNS)):
        return Severity.MEDIUM

    return Severity.LOW
