from faxlink.models.conversation_context import ConversationContext
from faxlink.models.correlation_event import CorrelationEvent

__all__ = [
    "ConversationContext",
    "CorrelationEvent",
]
