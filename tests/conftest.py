"""Shared test fixtures and helpers."""

import math
from typing import Optional

import pytest
import pytest_asyncio

from recruit_engine.config import settings
from recruit_engine.conversation.guardrails import GuardrailPipeline
from recruit_engine.conversation.state_machine import RecruitmentStateMachine
from recruit_engine.errors import LanguageModelError
from recruit_engine.persistence import InMemoryDocumentStore, collections
from recruit_engine.schemas.conversation_schema import InboundMessage, Message
from recruit_engine.tools.calendar import FakeCalendarProvider
from recruit_engine.tools.llm import LanguageModel
from recruit_engine.webhook import build_engine

TENANT_ID = "acme"
ORIGIN_ID = "acme-whatsapp"
CALENDAR_ID = "rrhh@acme.pe"
CANDIDATE_PHONE = "51987654321"

# Miraflores centroid; test stores are placed due north of it
BASE_LAT = -12.1111
BASE_LNG = -77.0316
KM_PER_DEGREE_LAT = math.pi * 6371.0 / 180


def lat_at_km(km: float) -> float:
    """Latitude ``km`` north of the base point along its meridian."""
    return BASE_LAT + km / KM_PER_DEGREE_LAT


class ScriptedLanguageModel(LanguageModel):
    """Returns queued replies in order, then a fixed acknowledgement."""

    def __init__(self, replies: Optional[list[str]] = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[tuple[str, list[Message], str]] = []
        self.fail = False

    async def generate(self, system_prompt: str, history: list[Message], user_message: str) -> str:
        self.calls.append((system_prompt, list(history), user_message))
        if self.fail:
            raise LanguageModelError("scripted failure")
        if self.replies:
            return self.replies.pop(0)
        return "Entendido."

    @property
    def last_prompt(self) -> str:
        return self.calls[-1][0]


async def seed_tenant(documents: InMemoryDocumentStore, tenant_id: str = TENANT_ID, **fields) -> None:
    data = {
        "tenant_id": tenant_id,
        "name": "Acme Retail",
        "brand": "Acme",
        "bot_name": "Lia",
        "webhook_origin": ORIGIN_ID,
        "calendar_id": CALENDAR_ID,
    }
    data.update(fields)
    await documents.put(collections.tenant(tenant_id), data)


async def seed_store(
    documents: InMemoryDocumentStore,
    store_id: str,
    km_north: Optional[float] = None,
    vacancies: Optional[list[dict]] = None,
    tenant_id: str = TENANT_ID,
    **fields,
) -> None:
    data = {"name": f"Tienda {store_id}", "address": f"Av. {store_id} 123", "brand": "Acme"}
    if km_north is not None:
        data.update(lat=lat_at_km(km_north), lng=BASE_LNG)
    data.update(fields)
    await documents.put(collections.store(tenant_id, store_id), data)
    for vacancy in vacancies or []:
        vacancy = dict(vacancy)
        vacancy_id = vacancy.pop("id")
        vacancy.setdefault("status", "active")
        await documents.put(collections.vacancy(tenant_id, store_id, vacancy_id), vacancy)


@pytest.fixture
def state_machine():
    return RecruitmentStateMachine()


@pytest.fixture
def guardrail_pipeline():
    return GuardrailPipeline()


@pytest.fixture
def documents():
    return InMemoryDocumentStore()


@pytest.fixture
def calendar():
    return FakeCalendarProvider()


@pytest.fixture
def llm():
    return ScriptedLanguageModel()


@pytest_asyncio.fixture
async def seeded_documents(documents):
    """A tenant with one nearby flexible store and one distant store."""
    await seed_tenant(documents)
    await seed_store(
        documents,
        "miraflores",
        km_north=1.0,
        vacancies=[
            {"id": "vac-cajero", "position": "Cajero", "shift_type": "flexible", "open_slots": 2},
            {"id": "vac-cocina", "position": "Cocina", "shift_type": "fixed", "open_slots": 1},
        ],
    )
    await seed_store(
        documents,
        "callao",
        km_north=12.0,
        vacancies=[{"id": "vac-callao", "position": "Cajero", "shift_type": "fixed", "open_slots": 4}],
    )
    return documents


@pytest.fixture
def engine(seeded_documents, calendar, llm):
    return build_engine(seeded_documents, calendar, llm, settings)


def inbound(
    text: str = "",
    sender: str = CANDIDATE_PHONE,
    origin_id: str = ORIGIN_ID,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> InboundMessage:
    return InboundMessage(
        sender=sender, text=text, origin_id=origin_id, latitude=latitude, longitude=longitude
    )
