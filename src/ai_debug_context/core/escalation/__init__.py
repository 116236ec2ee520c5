from .context_builder import ContextBuilder
from .gateway import AIEscalationGateway, AssistantReply, Fallback, FallbackReason

__all__ = [
    "AIEscalationGateway",
    "AssistantReply",
    "ContextBuilder",
    "Fallback",
    "FallbackReason",
]
