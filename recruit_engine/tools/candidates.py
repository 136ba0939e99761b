"""Tenant-scoped candidate application records."""

import logging
from typing import Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from recruit_engine.config import settings
from recruit_engine.errors import ConcurrentUpdateError
from recruit_engine.persistence import DocumentStore, collections
from recruit_engine.schemas.conversation_schema import CandidateFacts, utcnow
from recruit_engine.schemas.interview_schema import CandidateRecord

logger = logging.getLogger(__name__)


class CandidateRepository:
    """Versioned reads and writes of ``tenants/{t}/candidates/{id}``."""

    def __init__(
        self, documents: DocumentStore, retries: int = settings.screening.save_retries
    ) -> None:
        self._documents = documents
        self._retries = retries

    async def get(self, tenant_id: str, candidate_id: str) -> Optional[CandidateRecord]:
        doc = await self._documents.get(collections.candidate(tenant_id, candidate_id))
        if doc is None:
            return None
        record = CandidateRecord.model_validate(doc.data)
        record.version = doc.version
        return record

    async def save(self, record: CandidateRecord) -> CandidateRecord:
        """
        Persist ``record`` against the version it was read at.

        A record without a version is created. Raises ConcurrentUpdateError
        when another writer got there first.
        """
        path = collections.candidate(record.tenant_id, record.candidate_id)
        record.updated_at = utcnow()
        data = record.model_dump(mode="json")
        if record.version is None:
            record.version = await self._documents.create(path, data)
        else:
            record.version = await self._documents.replace(path, data, record.version)
        return record

    async def upsert_profile(
        self, tenant_id: str, candidate_id: str, facts: CandidateFacts
    ) -> CandidateRecord:
        """Create the record or merge ``facts`` into its profile."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retries),
            retry=retry_if_exception_type(ConcurrentUpdateError),
            reraise=True,
        ):
            with attempt:
                record = await self.get(tenant_id, candidate_id)
                if record is None:
                    record = CandidateRecord(
                        candidate_id=candidate_id, tenant_id=tenant_id, profile=facts
                    )
                else:
                    record.profile = record.profile.merged(facts)
                return await self.save(record)
