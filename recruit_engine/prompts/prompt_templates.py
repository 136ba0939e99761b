"""Dynamic context blocks listing exactly what the model may mention."""

from typing import Optional

from recruit_engine.schemas.conversation_schema import (
    CandidateFacts,
    OfferedSlot,
    OfferedStore,
    OfferedVacancy,
)

BASIC_INFO_FIELDS = [
    ("name", "full name"),
    ("birth_date", "birth date"),
    ("national_id", "national ID"),
    ("email", "email"),
]


def missing_basic_info(facts: CandidateFacts) -> list[str]:
    return [label for field, label in BASIC_INFO_FIELDS if getattr(facts, field) is None]


def build_basic_info_prompt(facts: CandidateFacts) -> str:
    """Collected and missing details, so the model asks for the next one only."""
    parts: list[str] = []
    collected = [
        f"  {label}: {getattr(facts, field)}"
        for field, label in BASIC_INFO_FIELDS
        if getattr(facts, field) is not None
    ]
    if collected:
        parts.append("Information collected so far:")
        parts.extend(collected)
    missing = missing_basic_info(facts)
    if missing:
        parts.append(f"\nNow ask for their {missing[0]}.")
    return "\n".join(parts)


def build_hard_filter_prompt(facts: CandidateFacts) -> str:
    if facts.rotating_shifts is None:
        return "NEXT QUESTION: Can you work rotating shifts (morning, afternoon or night)?"
    return "NEXT QUESTION: Can you work store closing shifts 2-3 times a week?"


def build_salary_prompt(max_salary: Optional[float]) -> str:
    if max_salary is None:
        return ""
    return f"Do not mention it, but the position pays up to {max_salary:.0f} per month."


def build_store_list_prompt(stores: list[OfferedStore]) -> str:
    lines = ["STORES (present in this order):"]
    for index, store in enumerate(stores, start=1):
        positions = ", ".join(sorted({v.position for v in store.vacancies}))
        lines.append(
            f"  {index}. {store.name} - {store.address} ({store.distance_km:.1f} km) - {positions}"
        )
    return "\n".join(lines)


def build_vacancy_list_prompt(store: OfferedStore) -> str:
    lines = [f"POSITIONS AT {store.name} (present in this order):"]
    for index, vacancy in enumerate(store.vacancies, start=1):
        lines.append(f"  {index}. {_vacancy_label(vacancy)}")
    return "\n".join(lines)


def _vacancy_label(vacancy: OfferedVacancy) -> str:
    shift = "flexible shifts" if vacancy.shift_type.value == "flexible" else "fixed shift"
    return f"{vacancy.position} ({shift})"


def build_slot_list_prompt(slots: list[OfferedSlot]) -> str:
    lines = ["INTERVIEW TIMES (present in this order):"]
    for index, slot in enumerate(slots, start=1):
        lines.append(f"  {index}. {slot.display}")
    return "\n".join(lines)


def build_interview_prompt(display: str, address: str) -> str:
    return f"INTERVIEW: {display}\nADDRESS: {address}"
