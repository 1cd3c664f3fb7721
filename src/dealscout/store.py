"""Concrete implementations for persisting personas, learned weights and interactions."""

import sqlite3
import threading
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from loguru import logger

from .models import (
    Action,
    EntityType,
    FeatureSnapshot,
    InteractionRecord,
    LearnedWeight,
    Persona,
)


class Store(ABC):
    """Interface for the narrow row store behind the preference engine and memory."""

    @abstractmethod
    def load_personas(self) -> List[Persona]:
        """Returns every stored persona."""
        pass

    @abstractmethod
    def save_persona(self, persona: Persona) -> None:
        """Inserts or replaces a persona by id."""
        pass

    @abstractmethod
    def load_learned_weights(self, persona_id: Optional[str] = None) -> List[LearnedWeight]:
        """Returns learned weights, optionally for a single persona."""
        pass

    @abstractmethod
    def upsert_learned_weight(self, weight: LearnedWeight) -> None:
        """Inserts or replaces the weight keyed by (persona_id, tag)."""
        pass

    @abstractmethod
    def delete_learned_weights(self, persona_id: str) -> int:
        """Deletes every learned weight of a persona; returns how many were removed."""
        pass

    @abstractmethod
    def append_interaction(self, record: InteractionRecord) -> None:
        pass

    @abstractmethod
    def read_recent_interactions(self, limit: int) -> List[InteractionRecord]:
        """Returns at most ``limit`` interactions, newest first."""
        pass


class InMemory(Store):
    """Process-lifetime storage; the default when no database is configured."""

    def __init__(self, max_interactions: int = 1000):
        self._lock = threading.Lock()
        self._personas: Dict[str, Persona] = {}
        self._weights: Dict[Tuple[str, str], LearnedWeight] = {}
        self._interactions = deque(maxlen=max_interactions)

    def load_personas(self):
        with self._lock:
            return [p.model_copy(deep=True) for p in self._personas.values()]

    def save_persona(self, persona):
        with self._lock:
            self._personas[persona.id] = persona.model_copy(deep=True)

    def load_learned_weights(self, persona_id=None):
        with self._lock:
            return [
                w.model_copy()
                for (pid, _), w in self._weights.items()
                if persona_id is None or pid == persona_id
            ]

    def upsert_learned_weight(self, weight):
        with self._lock:
            self._weights[(weight.persona_id, weight.tag)] = weight.model_copy()

    def delete_learned_weights(self, persona_id):
        with self._lock:
            keys = [k for k in self._weights if k[0] == persona_id]
            for key in keys:
                del self._weights[key]
            return len(keys)

    def append_interaction(self, record):
        with self._lock:
            self._interactions.appendleft(record.model_copy(deep=True))

    def read_recent_interactions(self, limit):
        with self._lock:
            return list(self._interactions)[: max(limit, 0)]


class SQLite(Store):
    """SQLite-backed storage. Each call opens its own connection."""

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()
        self._create_tables()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _create_tables(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS personas (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS learned_weights (
                    persona_id TEXT NOT NULL,
                    tag TEXT NOT NULL,
                    weight REAL NOT NULL,
                    like_count INTEGER NOT NULL DEFAULT 0,
                    dislike_count INTEGER NOT NULL DEFAULT 0,
                    last_updated TEXT NOT NULL,
                    PRIMARY KEY (persona_id, tag)
                );
                CREATE TABLE IF NOT EXISTS interactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    entity_id TEXT NOT NULL,
                    entity_type TEXT NOT NULL,
                    action TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    features TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_interactions_entity
                    ON interactions (entity_id);
                """
            )
        logger.debug(f"SQLite store ready at {self.db_path}")

    def load_personas(self):
        with self._connect() as conn:
            rows = conn.execute("SELECT data FROM personas ORDER BY id").fetchall()
        return [Persona.model_validate_json(row["data"]) for row in rows]

    def save_persona(self, persona):
        with self._write_lock, self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO personas (id, data) VALUES (?, ?)",
                (persona.id, persona.model_dump_json()),
            )

    def load_learned_weights(self, persona_id=None):
        query = "SELECT * FROM learned_weights"
        params: tuple = ()
        if persona_id is not None:
            query += " WHERE persona_id = ?"
            params = (persona_id,)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            LearnedWeight(
                persona_id=row["persona_id"],
                tag=row["tag"],
                like_count=row["like_count"],
                dislike_count=row["dislike_count"],
                last_updated=datetime.fromisoformat(row["last_updated"]),
            )
            for row in rows
        ]

    def upsert_learned_weight(self, weight):
        with self._write_lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO learned_weights
                    (persona_id, tag, weight, like_count, dislike_count, last_updated)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (persona_id, tag) DO UPDATE SET
                    weight = excluded.weight,
                    like_count = excluded.like_count,
                    dislike_count = excluded.dislike_count,
                    last_updated = excluded.last_updated
                """,
                (
                    weight.persona_id,
                    weight.tag,
                    weight.weight,
                    weight.like_count,
                    weight.dislike_count,
                    weight.last_updated.isoformat(),
                ),
            )

    def delete_learned_weights(self, persona_id):
        with self._write_lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM learned_weights WHERE persona_id = ?", (persona_id,)
            )
            return cursor.rowcount

    def append_interaction(self, record):
        with self._write_lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO interactions (entity_id, entity_type, action, timestamp, features)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.entity_id,
                    record.entity_type.value,
                    record.action.value,
                    record.timestamp.isoformat(),
                    record.features.model_dump_json(),
                ),
            )

    def read_recent_interactions(self, limit):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM interactions ORDER BY id DESC LIMIT ?", (max(limit, 0),)
            ).fetchall()
        return [
            InteractionRecord(
                entity_id=row["entity_id"],
                entity_type=EntityType(row["entity_type"]),
                action=Action(row["action"]),
                timestamp=datetime.fromisoformat(row["timestamp"]),
                features=FeatureSnapshot.model_validate_json(row["features"]),
            )
            for row in rows
        ]
