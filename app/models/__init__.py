from app.models.bot_response import BotResponse
from app.models.conversation import Conversation, ConversationStatus
from app.models.reaction import Reaction
from app.models.user import User
from app.models.user_query import UserQuery

__all__ = [
    "BotResponse",
    "Conversation",
    "ConversationStatus",
    "Reaction",
    "User",
    "UserQuery",
]
