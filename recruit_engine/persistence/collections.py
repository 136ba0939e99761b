"""Collection names and document paths (schema-in-code).

A document store has no DDL. These helpers are the single source of truth
for where each record lives:

    tenants/{tenant}
    tenants/{tenant}/stores/{store}
    tenants/{tenant}/stores/{store}/vacancies/{vacancy}
    tenants/{tenant}/candidates/{candidate}
    conversations/{identity}

Conversations are global because the identity must be resolved to a tenant
before any tenant-scoped path can be built.
"""

COLLECTION_TENANTS = "tenants"
COLLECTION_STORES = "stores"
COLLECTION_VACANCIES = "vacancies"
COLLECTION_CANDIDATES = "candidates"
COLLECTION_CONVERSATIONS = "conversations"


def tenants() -> str:
    return COLLECTION_TENANTS


def tenant(tenant_id: str) -> str:
    return f"{COLLECTION_TENANTS}/{tenant_id}"


def stores(tenant_id: str) -> str:
    return f"{tenant(tenant_id)}/{COLLECTION_STORES}"


def store(tenant_id: str, store_id: str) -> str:
    return f"{stores(tenant_id)}/{store_id}"


def vacancies(tenant_id: str, store_id: str) -> str:
    return f"{store(tenant_id, store_id)}/{COLLECTION_VACANCIES}"


def vacancy(tenant_id: str, store_id: str, vacancy_id: str) -> str:
    return f"{vacancies(tenant_id, store_id)}/{vacancy_id}"


def candidates(tenant_id: str) -> str:
    return f"{tenant(tenant_id)}/{COLLECTION_CANDIDATES}"


def candidate(tenant_id: str, candidate_id: str) -> str:
    return f"{candidates(tenant_id)}/{candidate_id}"


def conversations() -> str:
    return COLLECTION_CONVERSATIONS


def conversation(identity: str) -> str:
    return f"{COLLECTION_CONVERSATIONS}/{identity}"
