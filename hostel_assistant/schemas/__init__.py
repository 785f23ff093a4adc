from hostel_assistant.schemas.message import ActivityEvent, InboundMessage, RouteResult

__all__ = ["ActivityEvent", "InboundMessage", "RouteResult"]
