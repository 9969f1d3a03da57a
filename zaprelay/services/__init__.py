from zaprelay.services.evolution_service import EvolutionClient
from zaprelay.services.normalizer import normalize_event, normalize_sender_id
from zaprelay.services.reply_service import ReplyOrchestrator, ReplyOutcome, ReplyStatus
from zaprelay.services.result import Result
from zaprelay.services.session_store import SessionStore

__all__ = [
    "EvolutionClient",
    "ReplyOrchestrator",
    "ReplyOutcome",
    "ReplyStatus",
    "Result",
    "SessionStore",
    "normalize_event",
    "normalize_sender_id",
]
