"""
Finite state machine for the recruitment dialogue.

Transitions are computed only from candidate facts and the results of
deterministic tool calls (matches found, slots available, booking made).
The language model phrases replies; it never chooses the next state.

Usage:
    sm = RecruitmentStateMachine(RecruitmentState.TERMS_CHECK)
    trigger = evaluate_gate(sm.current_state, facts, GateContext())
    if trigger is not None:
        sm.transition(trigger)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from recruit_engine.config import settings
from recruit_engine.schemas.conversation_schema import CandidateFacts, RecruitmentState

logger = logging.getLogger(__name__)


class TransitionTrigger(str, Enum):
    """Events that cause state transitions."""
    CONVERSATION_STARTED = "conversation_started"
    TERMS_ACCEPTED = "terms_accepted"
    TERMS_DECLINED = "terms_declined"
    BASIC_INFO_COMPLETE = "basic_info_complete"
    UNDERAGE = "underage"
    SHIFTS_ACCEPTED = "shifts_accepted"
    SHIFTS_DECLINED = "shifts_declined"
    SALARY_CAPTURED = "salary_captured"
    STORES_FOUND = "stores_found"
    STORE_SELECTED = "store_selected"
    VACANCY_SELECTED = "vacancy_selected"
    SLOTS_OFFERED = "slots_offered"
    INTERVIEW_BOOKED = "interview_booked"


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: RecruitmentState
    to_state: RecruitmentState
    trigger: TransitionTrigger


@dataclass(frozen=True)
class GateContext:
    """Outcomes of the tool calls a gate may depend on."""
    matches_found: bool = False
    store_chosen: bool = False
    slots_available: bool = False
    interview_booked: bool = False


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


S = RecruitmentState
T = TransitionTrigger

TRANSITIONS: list[Transition] = [
    Transition(S.START, S.TERMS_CHECK, T.CONVERSATION_STARTED),
    Transition(S.TERMS_CHECK, S.BASIC_INFO, T.TERMS_ACCEPTED),
    Transition(S.TERMS_CHECK, S.REJECTED, T.TERMS_DECLINED),
    Transition(S.BASIC_INFO, S.HARD_FILTERS, T.BASIC_INFO_COMPLETE),
    Transition(S.BASIC_INFO, S.REJECTED, T.UNDERAGE),
    Transition(S.HARD_FILTERS, S.SALARY_EXPECTATION, T.SHIFTS_ACCEPTED),
    Transition(S.HARD_FILTERS, S.REJECTED, T.SHIFTS_DECLINED),
    Transition(S.SALARY_EXPECTATION, S.LOCATION_INPUT, T.SALARY_CAPTURED),
    Transition(S.LOCATION_INPUT, S.STORE_SELECTION, T.STORES_FOUND),
    Transition(S.STORE_SELECTION, S.VACANCY_SELECTION, T.STORE_SELECTED),
    Transition(S.VACANCY_SELECTION, S.SCREENING, T.VACANCY_SELECTED),
    Transition(S.SCREENING, S.INTERVIEW_SLOT_OFFER, T.SLOTS_OFFERED),
    Transition(S.INTERVIEW_SLOT_OFFER, S.CONFIRMED, T.INTERVIEW_BOOKED),
]

TERMINAL_STATES = frozenset({S.CONFIRMED, S.REJECTED})


def evaluate_gate(
    state: RecruitmentState,
    facts: CandidateFacts,
    context: GateContext = GateContext(),
    min_age: int = settings.screening.min_age,
) -> Optional[TransitionTrigger]:
    """
    Return the trigger the current facts fire from ``state``, or None to stay.

    Rejections are checked before advances so a negative answer always wins
    over any other populated field.
    """
    if state == S.START:
        return T.CONVERSATION_STARTED

    if state == S.TERMS_CHECK:
        if facts.terms_accepted is False:
            return T.TERMS_DECLINED
        if facts.terms_accepted is True:
            return T.TERMS_ACCEPTED
        return None

    if state == S.BASIC_INFO:
        if facts.age is not None and facts.age < min_age:
            return T.UNDERAGE
        if facts.name and facts.national_id and facts.email:
            return T.BASIC_INFO_COMPLETE
        return None

    if state == S.HARD_FILTERS:
        if facts.rotating_shifts is False or facts.closing_shifts is False:
            return T.SHIFTS_DECLINED
        if facts.rotating_shifts and facts.closing_shifts:
            return T.SHIFTS_ACCEPTED
        return None

    if state == S.SALARY_EXPECTATION:
        return T.SALARY_CAPTURED if facts.salary_expectation is not None else None

    if state == S.LOCATION_INPUT:
        return T.STORES_FOUND if facts.has_location and context.matches_found else None

    if state == S.STORE_SELECTION:
        return T.STORE_SELECTED if context.store_chosen else None

    if state == S.VACANCY_SELECTION:
        return T.VACANCY_SELECTED

    if state == S.SCREENING:
        return T.SLOTS_OFFERED if context.slots_available else None

    if state == S.INTERVIEW_SLOT_OFFER:
        return T.INTERVIEW_BOOKED if context.interview_booked else None

    return None


class RecruitmentStateMachine:
    """
    Applies triggers against the transition table.

    Every transition must be explicitly listed; anything else raises
    InvalidTransitionError with the triggers allowed from the current state.
    """

    def __init__(self, state: RecruitmentState = S.START) -> None:
        self._current_state = state

    @property
    def current_state(self) -> RecruitmentState:
        return self._current_state

    def transition(self, trigger: TransitionTrigger) -> RecruitmentState:
        """
        Execute a state transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def advance(
        self, facts: CandidateFacts, context: GateContext = GateContext()
    ) -> RecruitmentState:
        """Evaluate the gate for the current state and apply the result, if any."""
        trigger = evaluate_gate(self._current_state, facts, context)
        if trigger is not None:
            self.transition(trigger)
        return self._current_state

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        return [t.trigger for t in TRANSITIONS if t.from_state == self._current_state]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES
