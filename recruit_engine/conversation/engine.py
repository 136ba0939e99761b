"""
Conversation engine: one inbound message in, one outbound message out.

Per message:
1. Guardrail check on the raw input
2. State-scoped extraction and fact merge
3. Deterministic gate, calling the matcher or scheduler only where the
   current state needs them
4. Context for the resulting state and one language-model call
5. Leak check on the reply and a single versioned save

The language model phrases replies only. Transient failures answer with a
generic apology and leave the stored conversation untouched.
"""

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional
from zoneinfo import ZoneInfo

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from recruit_engine.config import AppConfig, settings
from recruit_engine.conversation.extractors import extract, is_affirmative
from recruit_engine.conversation.guardrails import GuardrailPipeline
from recruit_engine.conversation.state_machine import GateContext, RecruitmentStateMachine
from recruit_engine.conversation.store import ConversationStore
from recruit_engine.errors import (
    BookingConflictError,
    CandidateNotFoundError,
    ConcurrentUpdateError,
    DocumentNotFoundError,
    LanguageModelError,
    RecruitEngineError,
    UnknownOriginError,
)
from recruit_engine.logging_context import get_trace_logger, set_trace_id
from recruit_engine.prompts import prompt_templates, system_prompts
from recruit_engine.schemas.catalog_schema import GeoPoint, StoreMatch, Tenant
from recruit_engine.schemas.conversation_schema import (
    CandidateFacts,
    Conversation,
    InboundMessage,
    OfferedSlot,
    OfferedStore,
    OfferedVacancy,
    OutboundMessage,
    RecruitmentState,
    Role,
)
from recruit_engine.schemas.interview_schema import Interview, InterviewRequest, TimeSlot
from recruit_engine.tools.candidates import CandidateRepository
from recruit_engine.tools.llm import LanguageModel
from recruit_engine.tools.scheduler import Scheduler, format_slot
from recruit_engine.tools.store_matcher import CandidateLocation, StoreMatcher
from recruit_engine.tools.tenants import TenantResolver
from recruit_engine.utils import mask_identity, normalize_phone

logger = get_trace_logger(__name__)

S = RecruitmentState
SHARED_LOCATION_TEXT = "[ubicación compartida]"


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: defaultdict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class TurnOutcome:
    """What the gate produced for this message."""
    context: GateContext = field(default_factory=GateContext)
    notes: list[str] = field(default_factory=list)
    booking: Optional[Interview] = None


class ConversationEngine:
    """Drives a candidate from first contact to a booked interview."""

    def __init__(
        self,
        store: ConversationStore,
        tenants: TenantResolver,
        matcher: StoreMatcher,
        scheduler: Scheduler,
        candidates: CandidateRepository,
        llm: LanguageModel,
        guardrails: Optional[GuardrailPipeline] = None,
        config: AppConfig = settings,
    ) -> None:
        self._store = store
        self._tenants = tenants
        self._matcher = matcher
        self._scheduler = scheduler
        self._candidates = candidates
        self._llm = llm
        self._guardrails = guardrails or GuardrailPipeline()
        self._config = config
        self._locks = KeyedLock()

    async def handle(self, inbound: InboundMessage) -> OutboundMessage:
        """
        Process one inbound message and return the reply.

        Raises:
            UnknownOriginError: If the origin maps to no tenant and defaults are disabled.
        """
        set_trace_id(inbound.message_id or uuid.uuid4().hex)
        identity = normalize_phone(inbound.sender)
        async with self._locks.hold(identity):
            try:
                tenant_id = await self._tenants.resolve(inbound.origin_id)
                logger.info(
                    "Inbound message from %s via %s (tenant %s)",
                    mask_identity(identity), inbound.origin_id, tenant_id,
                )
                tenant = await self._tenants.get_tenant(tenant_id)
                reply = await self._handle_with_retry(identity, tenant, inbound)
            except UnknownOriginError:
                raise
            except RecruitEngineError as exc:
                logger.error("Turn failed for %s: %s", mask_identity(identity), exc)
                reply = system_prompts.TECHNICAL_DIFFICULTY_REPLY
            except Exception:
                logger.exception("Unexpected failure handling message from %s", mask_identity(identity))
                reply = system_prompts.TECHNICAL_DIFFICULTY_REPLY
        return OutboundMessage(to=inbound.sender, text=reply)

    async def _handle_with_retry(
        self, identity: str, tenant: Tenant, inbound: InboundMessage
    ) -> str:
        # Another process may save between our load and save; reload and redo the turn
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.screening.save_retries),
            retry=retry_if_exception_type(ConcurrentUpdateError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning("Concurrent update on %s, retrying turn", mask_identity(identity))
                return await self._process(identity, tenant, inbound)

    async def _process(self, identity: str, tenant: Tenant, inbound: InboundMessage) -> str:
        conversation = await self._store.load_or_create(
            identity, tenant.tenant_id, inbound.origin_id
        )
        if not conversation.active:
            logger.info("Restarting inactive conversation for %s", mask_identity(identity))
            conversation = self._store.reset(conversation)

        text = inbound.text.strip()
        has_point = inbound.latitude is not None and inbound.longitude is not None
        user_text = text or (SHARED_LOCATION_TEXT if has_point else "")
        history = conversation.recent_messages(self._config.screening.history_limit)
        self._store.append_message(conversation, Role.USER, user_text)

        if self._guardrails.check_user_input(text):
            self._store.append_message(conversation, Role.ASSISTANT, system_prompts.PROMPT_OVERRIDE_REPLY)
            await self._store.save(conversation)
            return system_prompts.PROMPT_OVERRIDE_REPLY

        previous_state = conversation.state
        update = extract(previous_state, text, conversation.facts)
        if previous_state == S.LOCATION_INPUT and has_point:
            update = update.merged(
                CandidateFacts(latitude=inbound.latitude, longitude=inbound.longitude)
            )
        self._store.update_facts(conversation, update)

        outcome = await self._run_gate(conversation, tenant, text, update, has_point)
        machine = RecruitmentStateMachine(previous_state)
        new_state = machine.advance(conversation.facts, outcome.context)
        self._store.set_state(conversation, new_state)

        prompt_state = S.START if previous_state == S.START else new_state
        system_prompt = system_prompts.build_system_prompt(
            tenant, prompt_state, self._state_context(conversation, tenant, outcome.notes)
        )

        try:
            reply = await asyncio.wait_for(
                self._llm.generate(system_prompt, history, user_text),
                timeout=self._config.model.llm_timeout_sec,
            )
        except (asyncio.TimeoutError, LanguageModelError) as exc:
            if outcome.booking is None:
                logger.error("Language model unavailable, conversation left unchanged: %s", exc)
                return system_prompts.TECHNICAL_DIFFICULTY_REPLY
            logger.error("Language model unavailable after booking, sending fixed confirmation")
            reply = self._confirmation_text(conversation)

        if self._guardrails.check_agent_response(reply, self._internal_ids(conversation, outcome)):
            reply = (
                self._confirmation_text(conversation)
                if outcome.booking is not None
                else system_prompts.SAFE_REPLY
            )

        self._store.append_message(conversation, Role.ASSISTANT, reply)
        await self._store.save(conversation)
        return reply

    async def _run_gate(
        self,
        conversation: Conversation,
        tenant: Tenant,
        text: str,
        update: CandidateFacts,
        shared_point: bool = False,
    ) -> TurnOutcome:
        """Call the tools the current state depends on and record what they returned."""
        state = conversation.state
        if state == S.LOCATION_INPUT:
            return await self._match_stores(conversation, tenant, update, shared_point)
        if state == S.STORE_SELECTION:
            return self._choose_store(conversation, update)
        if state == S.VACANCY_SELECTION:
            self._choose_vacancy(conversation, update)
            return TurnOutcome()
        if state == S.SCREENING:
            return await self._offer_slots(conversation, tenant)
        if state == S.INTERVIEW_SLOT_OFFER:
            return await self._book_slot(conversation, tenant, update)
        if state == S.CONFIRMED and is_affirmative(text):
            return await self._confirm_attendance(conversation, tenant)
        return TurnOutcome()

    async def _match_stores(
        self,
        conversation: Conversation,
        tenant: Tenant,
        update: CandidateFacts,
        shared_point: bool,
    ) -> TurnOutcome:
        facts = conversation.facts
        if not facts.has_location:
            return TurnOutcome()

        point = None
        if facts.latitude is not None and facts.longitude is not None:
            point = GeoPoint(lat=facts.latitude, lng=facts.longitude)
        location = CandidateLocation(district=facts.district, point=point)
        if update.district is not None and not shared_point:
            # A district typed now outranks a point shared on an earlier turn
            typed = CandidateLocation(district=update.district)
            if typed.resolve() is not None:
                location = typed
        if location.resolve() is None:
            return TurnOutcome(notes=[system_prompts.LOCATION_NOT_FOUND_NOTE])

        matches = await self._matcher.find_matches(
            location,
            facts.shift_availability,
            tenant.tenant_id,
            tenant.max_distance_km or self._config.matching.max_distance_km,
        )
        if not matches:
            return TurnOutcome(notes=[system_prompts.NO_OPENINGS_NOTE])

        conversation.offers.stores = [_offered_store(match) for match in matches]
        return TurnOutcome(context=GateContext(matches_found=True))

    def _choose_store(self, conversation: Conversation, update: CandidateFacts) -> TurnOutcome:
        choice = update.store_selection
        if choice is not None and 1 <= choice <= len(conversation.offers.stores):
            return TurnOutcome(context=GateContext(store_chosen=True))
        return TurnOutcome(notes=[system_prompts.INVALID_CHOICE_NOTE])

    def _choose_vacancy(self, conversation: Conversation, update: CandidateFacts) -> None:
        store = self._selected_store(conversation)
        count = len(store.vacancies) if store else 0
        choice = update.vacancy_selection
        conversation.facts.vacancy_selection = choice if choice and 1 <= choice <= count else 1

    async def _offer_slots(self, conversation: Conversation, tenant: Tenant) -> TurnOutcome:
        slots = await self._scheduler.available_slots(self._calendar_id(tenant))
        conversation.offers.slots = [_offered_slot(slot) for slot in slots]
        if not slots:
            return TurnOutcome(notes=[system_prompts.NO_SLOTS_NOTE])
        return TurnOutcome(context=GateContext(slots_available=True))

    async def _book_slot(
        self, conversation: Conversation, tenant: Tenant, update: CandidateFacts
    ) -> TurnOutcome:
        offers = conversation.offers
        choice = update.slot_selection
        store = self._selected_store(conversation)
        vacancy = self._selected_vacancy(conversation)
        if choice is None or not 1 <= choice <= len(offers.slots) or store is None or vacancy is None:
            return TurnOutcome(notes=[system_prompts.INVALID_CHOICE_NOTE])

        slot = offers.slots[choice - 1]
        await self._candidates.upsert_profile(
            tenant.tenant_id, conversation.identity, conversation.facts
        )
        request = InterviewRequest(
            store_id=store.store_id,
            vacancy_id=vacancy.vacancy_id,
            start_time=slot.start,
            address=store.address,
        )
        try:
            interview = await self._scheduler.schedule_interview(
                tenant.tenant_id, conversation.identity, request
            )
        except BookingConflictError as exc:
            logger.warning("Booking conflict, re-offering slots: %s", exc)
            refreshed = await self._offer_slots(conversation, tenant)
            note = (
                system_prompts.BOOKING_CONFLICT_NOTE
                if refreshed.context.slots_available
                else system_prompts.NO_SLOTS_NOTE
            )
            return TurnOutcome(notes=[note])

        offers.interview_start = interview.start_time
        offers.interview_address = interview.address
        return TurnOutcome(context=GateContext(interview_booked=True), booking=interview)

    async def _confirm_attendance(self, conversation: Conversation, tenant: Tenant) -> TurnOutcome:
        try:
            await self._scheduler.confirm_interview(tenant.tenant_id, conversation.identity)
        except (CandidateNotFoundError, DocumentNotFoundError) as exc:
            logger.warning("Nothing to confirm for %s: %s", mask_identity(conversation.identity), exc)
            return TurnOutcome()
        return TurnOutcome(notes=[system_prompts.ATTENDANCE_CONFIRMED_NOTE])

    def _state_context(self, conversation: Conversation, tenant: Tenant, notes: list[str]) -> str:
        facts = conversation.facts
        offers = conversation.offers
        state = conversation.state
        parts: list[str] = []

        if state == S.BASIC_INFO:
            parts.append(prompt_templates.build_basic_info_prompt(facts))
        elif state == S.HARD_FILTERS:
            parts.append(prompt_templates.build_hard_filter_prompt(facts))
        elif state == S.SALARY_EXPECTATION:
            parts.append(prompt_templates.build_salary_prompt(tenant.max_salary))
        elif state == S.STORE_SELECTION and offers.stores:
            parts.append(prompt_templates.build_store_list_prompt(offers.stores))
        elif state == S.VACANCY_SELECTION:
            store = self._selected_store(conversation)
            if store is not None:
                parts.append(prompt_templates.build_vacancy_list_prompt(store))
        elif state == S.SCREENING:
            vacancy = self._selected_vacancy(conversation)
            if vacancy is not None:
                parts.append(f"POSITION: {vacancy.position}")
        elif state == S.INTERVIEW_SLOT_OFFER and offers.slots:
            parts.append(prompt_templates.build_slot_list_prompt(offers.slots))
        elif state == S.CONFIRMED and offers.interview_start is not None:
            parts.append(
                prompt_templates.build_interview_prompt(
                    self._interview_display(conversation), offers.interview_address or ""
                )
            )

        parts.extend(notes)
        return "\n\n".join(part for part in parts if part)

    def _selected_store(self, conversation: Conversation) -> Optional[OfferedStore]:
        index = conversation.facts.store_selection
        stores = conversation.offers.stores
        if index is None or not 1 <= index <= len(stores):
            return None
        return stores[index - 1]

    def _selected_vacancy(self, conversation: Conversation) -> Optional[OfferedVacancy]:
        store = self._selected_store(conversation)
        index = conversation.facts.vacancy_selection or 1
        if store is None or not 1 <= index <= len(store.vacancies):
            return None
        return store.vacancies[index - 1]

    def _calendar_id(self, tenant: Tenant) -> str:
        return tenant.calendar_id or self._config.scheduling.default_calendar_id

    def _interview_display(self, conversation: Conversation) -> str:
        start = conversation.offers.interview_start
        for slot in conversation.offers.slots:
            if slot.start == start:
                return slot.display
        if start is None:
            return ""
        return format_slot(start.astimezone(ZoneInfo(self._config.scheduling.timezone)))

    def _confirmation_text(self, conversation: Conversation) -> str:
        return system_prompts.CONFIRMATION_TEMPLATE.format(
            when=self._interview_display(conversation),
            address=conversation.offers.interview_address or "la tienda",
        )

    def _internal_ids(self, conversation: Conversation, outcome: TurnOutcome) -> list[str]:
        ids = []
        for store in conversation.offers.stores:
            ids.append(store.store_id)
            ids.extend(v.vacancy_id for v in store.vacancies)
        if outcome.booking is not None:
            ids.append(outcome.booking.calendar_event_id)
        return ids


def _offered_store(match: StoreMatch) -> OfferedStore:
    return OfferedStore(
        store_id=match.store.id,
        name=match.store.name,
        address=match.store.address,
        brand=match.store.brand,
        distance_km=match.distance_km,
        vacancies=[
            OfferedVacancy(
                vacancy_id=v.id,
                position=v.position,
                shift_type=v.shift_type,
                open_slots=v.open_slots,
            )
            for v in match.vacancies
        ],
    )


def _offered_slot(slot: TimeSlot) -> OfferedSlot:
    return OfferedSlot(start=slot.start, display=slot.display)

