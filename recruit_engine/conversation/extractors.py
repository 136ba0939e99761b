"""
Deterministic, state-scoped fact extraction.

Each state owns one extractor ``(text, known_facts) -> CandidateFacts``
returning only the fields it recognised. Rules run for the current state
only, so a district typed during basic info is never read as a name and a
number typed during salary is never read as a store choice.

Usage:
    update = extract(RecruitmentState.BASIC_INFO, "ana@mail.com", facts)
    facts = facts.merged(update)
"""

import logging
import re
from datetime import date
from typing import Callable, Optional

from recruit_engine.schemas.conversation_schema import CandidateFacts, RecruitmentState
from recruit_engine.utils import strip_accents

logger = logging.getLogger(__name__)

Extractor = Callable[[str, CandidateFacts], CandidateFacts]

AFFIRMATIVE_WORDS = {"si", "acepto", "ok", "okey", "dale", "claro", "yes", "acuerdo", "supuesto", "bueno", "listo", "confirmo"}
NEGATIVE_WORDS = {"no", "nop", "negativo", "rechazo", "nunca"}

MIN_NAME_LENGTH = 4
NAME_PREFIXES = ("me llamo ", "mi nombre es ", "soy ")

BIRTH_DATE_PATTERN = re.compile(r"\b(\d{1,2})[/\-.\s](\d{1,2})[/\-.\s](\d{4})\b")
NATIONAL_ID_PATTERN = re.compile(r"\b\d{8,9}\b")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
AMOUNT_PATTERN = re.compile(r"\d[\d.,]*")
THOUSANDS_PATTERN = re.compile(r"^\d{1,3}([.,]\d{3})+$")
CHOICE_PATTERN = re.compile(r"\b([1-9])\b")


def parse_yes_no(text: str) -> Optional[bool]:
    """First yes/no word in the text wins; None when there is neither."""
    for word in re.findall(r"[a-z]+", strip_accents(text)):
        if word in NEGATIVE_WORDS:
            return False
        if word in AFFIRMATIVE_WORDS:
            return True
    return None


def is_affirmative(text: str) -> bool:
    return parse_yes_no(text) is True


def parse_amount(text: str) -> Optional[float]:
    """First amount in the text, accepting ``1,200`` or ``1.200`` thousands and decimals."""
    match = AMOUNT_PATTERN.search(text)
    if match is None:
        return None
    raw = match.group(0).rstrip(".,")
    if THOUSANDS_PATTERN.match(raw):
        raw = re.sub(r"[.,]", "", raw)
    else:
        raw = raw.replace(",", ".")
    try:
        return float(raw)
    except ValueError:
        return None


def parse_choice(text: str) -> Optional[int]:
    match = CHOICE_PATTERN.search(text)
    return int(match.group(1)) if match else None


def age_on(birth: date, today: date) -> int:
    return today.year - birth.year - ((today.month, today.day) < (birth.month, birth.day))


def _extract_terms(text: str, known: CandidateFacts) -> CandidateFacts:
    return CandidateFacts(terms_accepted=parse_yes_no(text))


def _extract_name(text: str) -> Optional[str]:
    for segment in re.split(r"[,;\n]", text):
        candidate = segment.strip()
        lowered = candidate.lower()
        for prefix in NAME_PREFIXES:
            if lowered.startswith(prefix):
                candidate = candidate[len(prefix):].strip()
                break
        if (
            len(candidate) >= MIN_NAME_LENGTH
            and not re.search(r"\d", candidate)
            and "@" not in candidate
        ):
            return candidate
    return None


def extract_basic_info(
    text: str, known: CandidateFacts, today: Optional[date] = None
) -> CandidateFacts:
    """Name, birth date with derived age, national id (8-9 digits) and email."""
    update = CandidateFacts()
    if known.name is None:
        update.name = _extract_name(text)

    date_match = BIRTH_DATE_PATTERN.search(text)
    if date_match and known.birth_date is None:
        day, month, year = (int(g) for g in date_match.groups())
        try:
            birth = date(year, month, day)
        except ValueError:
            logger.debug("Ignoring invalid birth date %r", date_match.group(0))
        else:
            update.birth_date = birth.isoformat()
            update.age = age_on(birth, today or date.today())

    # Strip the date first so its digits are never read as an id
    without_date = BIRTH_DATE_PATTERN.sub(" ", text)
    id_match = NATIONAL_ID_PATTERN.search(without_date)
    if id_match and known.national_id is None:
        update.national_id = id_match.group(0)

    email_match = EMAIL_PATTERN.search(text)
    if email_match and known.email is None:
        update.email = email_match.group(0).lower()
    return update


def _extract_hard_filters(text: str, known: CandidateFacts) -> CandidateFacts:
    answer = parse_yes_no(text)
    if answer is None:
        return CandidateFacts()
    if known.rotating_shifts is None:
        return CandidateFacts(rotating_shifts=answer)
    if known.closing_shifts is None:
        return CandidateFacts(closing_shifts=answer)
    return CandidateFacts()


def _extract_salary(text: str, known: CandidateFacts) -> CandidateFacts:
    return CandidateFacts(salary_expectation=parse_amount(text))


def _extract_location(text: str, known: CandidateFacts) -> CandidateFacts:
    district = text.strip()
    return CandidateFacts(district=district or None)


def _extract_store_choice(text: str, known: CandidateFacts) -> CandidateFacts:
    return CandidateFacts(store_selection=parse_choice(text))


def _extract_vacancy_choice(text: str, known: CandidateFacts) -> CandidateFacts:
    return CandidateFacts(vacancy_selection=parse_choice(text))


def _extract_slot_choice(text: str, known: CandidateFacts) -> CandidateFacts:
    return CandidateFacts(slot_selection=parse_choice(text))


EXTRACTORS: dict[RecruitmentState, Extractor] = {
    RecruitmentState.TERMS_CHECK: _extract_terms,
    RecruitmentState.BASIC_INFO: extract_basic_info,
    RecruitmentState.HARD_FILTERS: _extract_hard_filters,
    RecruitmentState.SALARY_EXPECTATION: _extract_salary,
    RecruitmentState.LOCATION_INPUT: _extract_location,
    RecruitmentState.STORE_SELECTION: _extract_store_choice,
    RecruitmentState.VACANCY_SELECTION: _extract_vacancy_choice,
    RecruitmentState.INTERVIEW_SLOT_OFFER: _extract_slot_choice,
}


def extract(state: RecruitmentState, text: str, known: CandidateFacts) -> CandidateFacts:
    """Run the current state's extractor. States without one extract nothing."""
    extractor = EXTRACTORS.get(state)
    if extractor is None or not text.strip():
        return CandidateFacts()
    update = extractor(text, known)
    if not update.is_empty():
        logger.debug(
            "Extracted %s in state %s",
            sorted(update.model_dump(exclude_none=True)), state.value,
        )
    return update
