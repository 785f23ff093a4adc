from hostel_assistant.assistant import Assistant
from hostel_assistant.schemas.message import ActivityEvent, InboundMessage, RouteResult

__version__ = "0.1.0"

__all__ = ["ActivityEvent", "Assistant", "InboundMessage", "RouteResult"]
