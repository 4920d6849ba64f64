from typing import Dict, List, Any
from collections import defaultdict
import asyncio

from neuroflow.domain.models.cognitive_state import utcnow

MAX_BUFFERED_MESSAGES = 100


class CommunicationBuffer:
    """Holds communications deferred while a user is in hyperfocus"""

    def __init__(self, max_messages: int = MAX_BUFFERED_MESSAGES):
        self.messages: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.max_messages = max_messages
        self._lock = asyncio.Lock()

    async def append(self, user_id: str, message: Dict[str, Any]) -> int:
        """Queue a message and return the user's queue length"""

        async with self._lock:
            message = dict(message)
            if "buffered_at" not in message:
                message["buffered_at"] = utcnow().isoformat()

            self.messages[user_id].append(message)

            # Oldest messages are dropped first
            if len(self.messages[user_id]) > self.max_messages:
                self.messages[user_id] = self.messages[user_id][-self.max_messages:]

            return len(self.messages[user_id])

    async def peek(self, user_id: str) -> List[Dict[str, Any]]:
        async with self._lock:
            return list(self.messages.get(user_id, []))

    async def drain(self, user_id: str) -> List[Dict[str, Any]]:
        """Remove and return every buffered message, oldest first"""

        async with self._lock:
            return self.messages.pop(user_id, [])

    async def clear(self, user_id: str):
        async with self._lock:
            self.messages.pop(user_id, None)
