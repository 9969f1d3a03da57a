from zaprelay.models.conversation import ConversationTurn, TurnRole
from zaprelay.models.message import CanonicalMessage, MessageKind

__all__ = ["CanonicalMessage", "ConversationTurn", "MessageKind", "TurnRole"]
