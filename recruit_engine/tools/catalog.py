"""
Read access to tenant stores and vacancies.

Stores and vacancies are created by the external recruiting workflow;
the engine only reads them, except for the scheduler's open-slot
reservation which writes through the document store directly.
"""

import logging
from typing import Optional

from recruit_engine.persistence import DocumentStore, collections
from recruit_engine.schemas.catalog_schema import Store, Vacancy

logger = logging.getLogger(__name__)


class Catalog:
    """Tenant-scoped store and vacancy lookups."""

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    async def list_stores(self, tenant_id: str) -> list[Store]:
        docs = await self._documents.list_collection(collections.stores(tenant_id))
        return [Store.model_validate({**doc.data, "id": doc.id}) for doc in docs]

    async def get_store(self, tenant_id: str, store_id: str) -> Optional[Store]:
        doc = await self._documents.get(collections.store(tenant_id, store_id))
        if doc is None:
            return None
        return Store.model_validate({**doc.data, "id": doc.id})

    async def list_vacancies(self, tenant_id: str, store_id: str) -> list[Vacancy]:
        docs = await self._documents.list_collection(collections.vacancies(tenant_id, store_id))
        return [
            Vacancy.model_validate({**doc.data, "id": doc.id, "store_id": store_id})
            for doc in docs
        ]

    async def get_vacancy(
        self, tenant_id: str, store_id: str, vacancy_id: str
    ) -> Optional[Vacancy]:
        doc = await self._documents.get(collections.vacancy(tenant_id, store_id, vacancy_id))
        if doc is None:
            return None
        return Vacancy.model_validate({**doc.data, "id": doc.id, "store_id": store_id})
