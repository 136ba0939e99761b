"""
Origin-to-tenant resolution.

Resolution order: cache, static fallback table, tenants queried by
``webhook_origin``, then the default tenant when the deployment allows it.
"""

import logging
import time
from typing import Callable, Optional

from recruit_engine.config import settings
from recruit_engine.errors import UnknownOriginError
from recruit_engine.persistence import DocumentStore, collections
from recruit_engine.schemas.catalog_schema import Tenant

logger = logging.getLogger(__name__)


class TenantCache:
    """Origin -> tenant id cache with a per-entry TTL."""

    def __init__(
        self,
        ttl_sec: float = settings.tenants.cache_ttl_sec,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_sec
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def get(self, origin_id: str) -> Optional[str]:
        entry = self._entries.get(origin_id)
        if entry is None:
            return None
        tenant_id, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[origin_id]
            return None
        return tenant_id

    def set(self, origin_id: str, tenant_id: str) -> None:
        self._entries[origin_id] = (tenant_id, self._clock() + self._ttl)

    def invalidate(self, origin_id: str) -> None:
        self._entries.pop(origin_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class TenantResolver:
    """Maps an inbound origin to the tenant that owns it."""

    def __init__(
        self,
        documents: DocumentStore,
        cache: Optional[TenantCache] = None,
        fallbacks: Optional[dict[str, str]] = None,
        default_tenant_id: str = settings.tenants.default_tenant_id,
        allow_default: bool = settings.tenants.allow_default,
    ) -> None:
        self._documents = documents
        self._cache = cache if cache is not None else TenantCache()
        self._fallbacks = dict(settings.tenants.fallbacks if fallbacks is None else fallbacks)
        self._default_tenant_id = default_tenant_id
        self._allow_default = allow_default

    @property
    def cache(self) -> TenantCache:
        return self._cache

    async def resolve(self, origin_id: str) -> str:
        """
        Return the tenant id for ``origin_id``.

        Raises:
            UnknownOriginError: If nothing matches and the default tenant is disabled.
        """
        cached = self._cache.get(origin_id)
        if cached is not None:
            return cached

        tenant_id = self._fallbacks.get(origin_id)
        if tenant_id is None:
            docs = await self._documents.query(
                collections.tenants(), "webhook_origin", origin_id, limit=1
            )
            if docs:
                tenant_id = docs[0].data.get("tenant_id") or docs[0].id

        if tenant_id is None:
            if not self._allow_default:
                logger.error("No tenant configured for origin %r", origin_id)
                raise UnknownOriginError(f"No tenant configured for origin {origin_id!r}")
            logger.warning(
                "No tenant for origin %r, using default tenant %s",
                origin_id, self._default_tenant_id,
            )
            # Defaults are not cached so a newly configured origin takes effect at once
            return self._default_tenant_id

        self._cache.set(origin_id, tenant_id)
        logger.info("Resolved origin %r to tenant %s", origin_id, tenant_id)
        return tenant_id

    async def get_tenant(self, tenant_id: str) -> Tenant:
        """Load tenant configuration; unknown tenants get a minimal default profile."""
        doc = await self._documents.get(collections.tenant(tenant_id))
        if doc is None:
            if tenant_id != self._default_tenant_id:
                logger.warning("Tenant %s has no configuration document", tenant_id)
            return Tenant(tenant_id=tenant_id, name=tenant_id)
        return Tenant.model_validate({**doc.data, "tenant_id": tenant_id})
