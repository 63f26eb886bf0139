"""
Conversation state persistence.

- store: Redis-backed load/save/clear with TTL and bounded write retries
- helpers: turn start (fresh or resumed) and windowed message history
"""

from agent.state.helpers import add_message, create_initial_state, merge_with_existing
from agent.state.store import ConversationStateStore

__all__ = [
    "ConversationStateStore",
    "add_message",
    "create_initial_state",
    "merge_with_existing",
]
