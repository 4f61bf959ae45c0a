from pairchat.client.api import ChatApiClient
from pairchat.client.controller import ConversationViewController
from pairchat.client.reducers import ChatState, Event, Snapshot, ThreadState, reconcile

__all__ = [
    "ChatApiClient",
    "ConversationViewController",
    "ChatState",
    "Event",
    "Snapshot",
    "ThreadState",
    "reconcile",
]
