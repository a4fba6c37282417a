from .ask import AskOrchestrator, AskResult
from .classifier import QueryCategory, classify_message, chitchat_response
from .retriever import Retriever, deduplicate_matches

__all__ = [
    "AskOrchestrator",
    "AskResult",
    "QueryCategory",
    "classify_message",
    "chitchat_response",
    "Retriever",
    "deduplicate_matches",
]
