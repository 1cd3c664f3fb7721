"""Bounded interaction log and conversation buffer used to build prompts."""

import threading
from collections import Counter, deque
from typing import Dict, List, Optional, Union

from loguru import logger

from .models import (
    Action,
    ConversationTurn,
    EntityType,
    FeatureSnapshot,
    InteractionRecord,
)
from .store import InMemory, Store

# Minimum net like ratio for a feature value to count as a preference.
DECISIVE_RATIO = 0.5
SUMMARY_LIMIT = 5
TOOL_TURN_PREVIEW = 200


class InteractionMemory:
    """Short-term memory of what the user looked at, liked and discussed.

    Parameters
    ----------
    store : Store, optional
        Receives every recorded interaction; recent ones are reloaded from it
        on construction.
    capacity : int
        Maximum number of interactions kept; the oldest are evicted first.
    conversation_capacity : int
        Maximum number of conversation turns kept.
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        capacity: int = 100,
        conversation_capacity: int = 20,
    ):
        self.store = store if store is not None else InMemory()
        self.capacity = capacity
        self._lock = threading.Lock()
        # Newest first.
        self._records = deque(self.store.read_recent_interactions(capacity), maxlen=capacity)
        self._turns = deque(maxlen=conversation_capacity)
        self.current_entity_id: Optional[str] = None

    # --- Interactions ---

    def record(
        self,
        entity_id: str,
        entity_type: Union[EntityType, str],
        action: Union[Action, str],
        features: Optional[FeatureSnapshot] = None,
    ) -> InteractionRecord:
        record = InteractionRecord(
            entity_id=entity_id,
            entity_type=EntityType(entity_type),
            action=Action(action),
            features=features or FeatureSnapshot(),
        )
        with self._lock:
            self._records.appendleft(record)
        self.store.append_interaction(record)
        logger.debug(f"Recorded {record.action.value} on {entity_id}")
        return record

    def records(self) -> List[InteractionRecord]:
        """Snapshot of the log, newest first."""
        with self._lock:
            return list(self._records)

    def _latest_verdicts(self) -> Dict[str, Action]:
        verdicts = {}
        for record in self.records():
            if record.action != Action.VIEW and record.entity_id not in verdicts:
                verdicts[record.entity_id] = record.action
        return verdicts

    def is_liked(self, entity_id: str) -> bool:
        return self._latest_verdicts().get(entity_id) == Action.LIKE

    def is_disliked(self, entity_id: str) -> bool:
        return self._latest_verdicts().get(entity_id) == Action.DISLIKE

    def liked_entity_ids(self) -> List[str]:
        return [eid for eid, action in self._latest_verdicts().items() if action == Action.LIKE]

    def preference_summary(self) -> str:
        """Plain sentences describing what the user likes and avoids.

        Returns an empty string when nothing in the log is decisive.
        """
        likes, dislikes = Counter(), Counter()
        for record in self.records():
            if record.action == Action.VIEW:
                continue
            counter = likes if record.action == Action.LIKE else dislikes
            features = record.features
            for value in (features.industry, features.seniority, features.region):
                if value:
                    counter[value] += 1
            counter.update(features.tags)

        preferred, avoided = [], []
        for value in set(likes) | set(dislikes):
            total = likes[value] + dislikes[value]
            ratio = (likes[value] - dislikes[value]) / total
            if ratio >= DECISIVE_RATIO:
                preferred.append((likes[value], value))
            elif ratio <= -DECISIVE_RATIO:
                avoided.append((dislikes[value], value))

        lines = []
        if preferred:
            top = [v for _, v in sorted(preferred, key=lambda p: (-p[0], p[1]))[:SUMMARY_LIMIT]]
            lines.append("User actively prefers: " + ", ".join(top))
        if avoided:
            top = [v for _, v in sorted(avoided, key=lambda p: (-p[0], p[1]))[:SUMMARY_LIMIT]]
            lines.append("User tends to avoid: " + ", ".join(top))
        return "\n".join(lines)

    def stats(self) -> Dict[str, int]:
        counts = Counter(r.action for r in self.records())
        with self._lock:
            turns = len(self._turns)
        return {
            "interactions": sum(counts.values()),
            "likes": counts[Action.LIKE],
            "dislikes": counts[Action.DISLIKE],
            "views": counts[Action.VIEW],
            "conversation_turns": turns,
        }

    # --- Conversation ---

    def add_turn(
        self,
        role: str,
        content: str,
        entity_id: Optional[str] = None,
        tool_name: Optional[str] = None,
    ) -> ConversationTurn:
        turn = ConversationTurn(
            role=role,
            content=content,
            entity_id=entity_id or self.current_entity_id,
            tool_name=tool_name,
        )
        with self._lock:
            self._turns.append(turn)
        return turn

    def conversation_turns(self, entity_id: Optional[str] = None) -> List[ConversationTurn]:
        """Prior turns, oldest first, optionally limited to one entity."""
        with self._lock:
            turns = list(self._turns)
        if entity_id is None:
            return turns
        return [t for t in turns if t.entity_id == entity_id]

    def recent_conversation(self, max_turns: int = 5, entity_id: Optional[str] = None) -> str:
        turns = self.conversation_turns(entity_id)[-max_turns:]
        lines = []
        for turn in turns:
            if turn.role == "tool":
                lines.append(f"[Tool: {turn.tool_name}] {turn.content[:TOOL_TURN_PREVIEW]}...")
            else:
                lines.append(f"{turn.role.upper()}: {turn.content}")
        return "\n".join(lines)

    def set_current_entity(self, entity_id: Optional[str]) -> None:
        self.current_entity_id = entity_id

    def clear_conversation(self) -> None:
        with self._lock:
            self._turns.clear()
        self.current_entity_id = None
