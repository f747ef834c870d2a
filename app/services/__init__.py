from app.services.backfill_reconciler import BackfillReconciler
from app.services.conversation_resolver import ConversationResolver
from app.services.conversation_service import ConversationService
from app.services.event_deduplicator import (
    EventDeduplicator,
    InMemoryEventDeduplicator,
)
from app.services.identity_resolver import IdentityResolver
from app.services.message_linker import MessageLinker
from app.services.reaction_attacher import ReactionAttacher, ReactionOp

__all__ = [
    "BackfillReconciler",
    "ConversationResolver",
    "ConversationService",
    "EventDeduplicator",
    "IdentityResolver",
    "InMemoryEventDeduplicator",
    "MessageLinker",
    "ReactionAttacher",
    "ReactionOp",
]
