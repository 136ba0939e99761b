"""
Durable conversation state keyed by channel identity.

Mutators change the in-memory Conversation only; ``save`` persists it in a
single compare-and-set write against the version that was loaded. A stale
save raises ConcurrentUpdateError and the caller reloads and retries.
"""

import logging
from datetime import datetime
from typing import Optional

from recruit_engine.config import settings
from recruit_engine.persistence import DocumentStore, collections
from recruit_engine.schemas.conversation_schema import (
    CandidateFacts,
    Conversation,
    Message,
    RecruitmentState,
    Role,
    utcnow,
)
from recruit_engine.utils import mask_identity

logger = logging.getLogger(__name__)


class ConversationStore:
    """Sole owner of ``conversations/{identity}`` documents."""

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    async def get(self, identity: str) -> Optional[Conversation]:
        doc = await self._documents.get(collections.conversation(identity))
        if doc is None:
            return None
        conversation = Conversation.model_validate(doc.data)
        conversation.version = doc.version
        return conversation

    async def load_or_create(
        self, identity: str, tenant_id: str, origin_id: str
    ) -> Conversation:
        """
        Return the stored conversation, or a fresh unsaved one.

        A stored conversation owned by another tenant is reset in memory so
        no history crosses tenants. The reset is persisted by the next save.
        """
        conversation = await self.get(identity)
        if conversation is None:
            logger.info("Starting conversation for %s in tenant %s", mask_identity(identity), tenant_id)
            return Conversation(identity=identity, tenant_id=tenant_id, origin_id=origin_id)

        if conversation.tenant_id != tenant_id:
            logger.warning(
                "Tenant changed for %s (%s -> %s), resetting conversation",
                mask_identity(identity), conversation.tenant_id, tenant_id,
            )
            return self.reset(conversation, tenant_id, origin_id)

        if conversation.origin_id != origin_id:
            conversation.origin_id = origin_id
        return conversation

    def reset(
        self,
        conversation: Conversation,
        tenant_id: Optional[str] = None,
        origin_id: Optional[str] = None,
    ) -> Conversation:
        """Fresh conversation for the same identity, keeping the storage version."""
        fresh = Conversation(
            identity=conversation.identity,
            tenant_id=tenant_id or conversation.tenant_id,
            origin_id=origin_id or conversation.origin_id,
        )
        fresh.version = conversation.version
        return fresh

    @staticmethod
    def append_message(conversation: Conversation, role: Role, text: str) -> Message:
        message = Message(role=role, text=text)
        conversation.messages.append(message)
        if role == Role.USER:
            conversation.last_inbound_at = message.timestamp
        return message

    @staticmethod
    def update_facts(conversation: Conversation, update: CandidateFacts) -> CandidateFacts:
        """Merge ``update`` into the known facts; known values are never removed."""
        conversation.facts = conversation.facts.merged(update)
        return conversation.facts

    @staticmethod
    def set_state(conversation: Conversation, state: RecruitmentState) -> None:
        if state != conversation.state:
            logger.info("Conversation state %s -> %s", conversation.state.value, state.value)
        conversation.state = state

    async def save(self, conversation: Conversation) -> Conversation:
        """
        Persist in one versioned write.

        Raises:
            ConcurrentUpdateError: If the stored version moved since load.
        """
        path = collections.conversation(conversation.identity)
        conversation.updated_at = utcnow()
        data = conversation.model_dump(mode="json")
        if conversation.version is None:
            conversation.version = await self._documents.create(path, data)
        else:
            conversation.version = await self._documents.replace(path, data, conversation.version)
        return conversation

    async def history(
        self, identity: str, limit: int = settings.screening.history_limit
    ) -> list[Message]:
        conversation = await self.get(identity)
        if conversation is None:
            return []
        return conversation.recent_messages(limit)

    async def deactivate(self, identity: str) -> Optional[Conversation]:
        """Mark a conversation inactive, e.g. after it aged out."""
        conversation = await self.get(identity)
        if conversation is None or not conversation.active:
            return conversation
        conversation.active = False
        logger.info("Deactivated conversation for %s", mask_identity(identity))
        return await self.save(conversation)

    async def find_inactive(self, before: datetime) -> list[Conversation]:
        """Active conversations with no inbound message since ``before``."""
        stale = []
        for doc in await self._documents.list_collection(collections.conversations()):
            conversation = Conversation.model_validate(doc.data)
            conversation.version = doc.version
            last_seen = conversation.last_inbound_at or conversation.created_at
            if conversation.active and last_seen < before:
                stale.append(conversation)
        return stale
