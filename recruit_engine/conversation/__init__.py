from recruit_engine.conversation.engine import ConversationEngine, KeyedLock
from recruit_engine.conversation.guardrails import GuardrailPipeline
from recruit_engine.conversation.state_machine import (
    GateContext,
    RecruitmentStateMachine,
    TransitionTrigger,
)
from recruit_engine.conversation.store import ConversationStore

__all__ = [
    "ConversationEngine",
    "ConversationStore",
    "GateContext",
    "GuardrailPipeline",
    "KeyedLock",
    "RecruitmentStateMachine",
    "TransitionTrigger",
]
