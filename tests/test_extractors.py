"""Tests for state-scoped fact extraction."""

from datetime import date

import pytest

from recruit_engine.conversation.extractors import (
    extract,
    extract_basic_info,
    parse_amount,
    parse_choice,
    parse_yes_no,
)
from recruit_engine.schemas.conversation_schema import CandidateFacts, RecruitmentState

TODAY = date(2025, 3, 1)


class TestYesNo:
    @pytest.mark.parametrize("text", ["Sí", "si acepto", "Claro que sí", "ok", "de acuerdo"])
    def test_affirmative(self, text):
        assert parse_yes_no(text) is True

    @pytest.mark.parametrize("text", ["No", "no gracias", "NO acepto"])
    def test_negative(self, text):
        assert parse_yes_no(text) is False

    def test_neither(self):
        assert parse_yes_no("tal vez mañana") is None

    def test_first_word_wins(self):
        assert parse_yes_no("sí, no tengo problema") is True


class TestAmountsAndChoices:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1200", 1200.0),
            ("S/ 1,200", 1200.0),
            ("1.500 soles", 1500.0),
            ("unos 1025.50", 1025.5),
            ("1130,5", 1130.5),
        ],
    )
    def test_amount(self, text, expected):
        assert parse_amount(text) == expected

    def test_no_amount(self):
        assert parse_amount("lo que paguen") is None

    def test_choice(self):
        assert parse_choice("la 2 por favor") == 2
        assert parse_choice("opción 10") is None
        assert parse_choice("ninguna") is None


class TestBasicInfo:
    def test_all_fields_in_one_message(self):
        facts = extract_basic_info(
            "Ana Torres, 15/03/1999, 45678912, Ana.Torres@Mail.com", CandidateFacts(), TODAY
        )
        assert facts.name == "Ana Torres"
        assert facts.birth_date == "1999-03-15"
        assert facts.age == 25
        assert facts.national_id == "45678912"
        assert facts.email == "ana.torres@mail.com"

    def test_name_prefix_removed(self):
        facts = extract_basic_info("Me llamo Luis Quispe", CandidateFacts(), TODAY)
        assert facts.name == "Luis Quispe"

    def test_date_digits_are_not_an_id(self):
        facts = extract_basic_info("nací el 01-02-2001", CandidateFacts(name="Ana"), TODAY)
        assert facts.birth_date == "2001-02-01"
        assert facts.national_id is None

    def test_invalid_date_ignored(self):
        facts = extract_basic_info("31/02/2000", CandidateFacts(name="Ana"), TODAY)
        assert facts.birth_date is None
        assert facts.age is None

    def test_known_fields_not_overwritten(self):
        known = CandidateFacts(name="Ana Torres", email="ana@mail.com")
        facts = extract_basic_info("Otro Nombre, otro@mail.com", known, TODAY)
        assert facts.name is None
        assert facts.email is None

    def test_underage_birth_date(self):
        facts = extract_basic_info("02/03/2008", CandidateFacts(name="Ana"), TODAY)
        assert facts.age == 16


class TestStateScoping:
    def test_hard_filters_fill_in_order(self):
        first = extract(RecruitmentState.HARD_FILTERS, "sí", CandidateFacts())
        assert first.rotating_shifts is True
        assert first.closing_shifts is None

        second = extract(RecruitmentState.HARD_FILTERS, "no", CandidateFacts(rotating_shifts=True))
        assert second.closing_shifts is False

    def test_location_keeps_free_text(self):
        facts = extract(RecruitmentState.LOCATION_INPUT, " San Isidro ", CandidateFacts())
        assert facts.district == "San Isidro"

    def test_number_in_salary_is_not_a_choice(self):
        facts = extract(RecruitmentState.SALARY_EXPECTATION, "2", CandidateFacts())
        assert facts.salary_expectation == 2.0
        assert facts.store_selection is None

    def test_choices_per_state(self):
        assert extract(RecruitmentState.STORE_SELECTION, "1", CandidateFacts()).store_selection == 1
        assert extract(RecruitmentState.VACANCY_SELECTION, "2", CandidateFacts()).vacancy_selection == 2
        assert extract(RecruitmentState.INTERVIEW_SLOT_OFFER, "3", CandidateFacts()).slot_selection == 3

    def test_states_without_extractor(self):
        assert extract(RecruitmentState.SCREENING, "sí 1 2 3", CandidateFacts()).is_empty()
        assert extract(RecruitmentState.CONFIRMED, "sí", CandidateFacts()).is_empty()

    def test_blank_text(self):
        assert extract(RecruitmentState.TERMS_CHECK, "   ", CandidateFacts()).is_empty()
