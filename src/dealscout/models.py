"""
Defines the core Pydantic data models for DealScout.

These models are the validated data contract shared by the inference session,
the tool-calling orchestrator, the preference engine and the interaction memory.
"""

import json
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
Role = Literal["user", "assistant", "system"]

EMBEDDING_DIMENSIONS = 384


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_tag(tag: str) -> str:
    """Lower-case a tag and collapse whitespace runs into underscores."""
    return re.sub(r"\s+", "_", str(tag).strip().lower())


def normalize_tags(tags) -> List[str]:
    """Normalize and de-duplicate tags, keeping first-seen order."""
    seen = []
    for tag in tags or []:
        norm = normalize_tag(tag)
        if norm and norm not in seen:
            seen.append(norm)
    return seen


# --- Enums ---
class ModelState(str, Enum):
    IDLE = "idle"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _STATE_ORDER.index(self)


_STATE_ORDER = [
    ModelState.IDLE,
    ModelState.DOWNLOADING,
    ModelState.DOWNLOADED,
    ModelState.INITIALIZING,
    ModelState.READY,
    ModelState.ERROR,
]


class EntityType(str, Enum):
    PERSON = "person"
    COMPANY = "company"


class Action(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"
    VIEW = "view"


class MatchLabel(str, Enum):
    STRONG_PASS = "StrongPass"
    SOFT_PASS = "SoftPass"
    BORDERLINE = "Borderline"
    PASS = "Pass"


# --- Conversation models ---
class ChatMessage(BaseModel):
    """A single message sent to the local model."""

    role: Role
    content: str
    images: List[str] = Field(default_factory=list)


class ConversationTurn(BaseModel):
    """A prior exchange kept for short-term dialogue continuity."""

    role: Literal["user", "assistant", "tool"]
    content: str
    entity_id: Optional[str] = None
    tool_name: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


# --- Tool models ---
class ToolParameter(BaseModel):
    type: str = "string"
    description: str = ""
    enum: Optional[List[str]] = None
    items: Optional[Dict[str, Any]] = None


class ToolSchema(BaseModel):
    """Declaration of a tool the model may request."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Dict[str, ToolParameter] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    def to_native(self) -> Dict[str, Any]:
        """Render as an OpenAI/Ollama style function-calling schema."""
        properties = {
            name: param.model_dump(exclude_none=True)
            for name, param in self.parameters.items()
        }
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": list(self.required),
                },
            },
        }


class ToolInvocation(BaseModel):
    """A model's request to run a tool, normalized across parsing paths."""

    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolExecutionResult(BaseModel):
    """Outcome of one tool execution as reported by the executor."""

    tool_name: str
    success: bool
    data: Any = None
    error: Optional[str] = None

    def serialize(self) -> str:
        """Text folded back into the conversation as a synthetic user turn."""
        if self.success:
            payload = json.dumps(self.data, default=str, ensure_ascii=False)
            return f"Tool result for {self.tool_name}: {payload}"
        return f"Tool {self.tool_name} failed: {self.error or 'unknown error'}"


# --- Inference models ---
class CompletionOptions(BaseModel):
    temperature: float = 0.7
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_tokens: int = 512
    stop: List[str] = Field(default_factory=list)


class StreamChunk(BaseModel):
    """A piece of backend output: text, native tool calls, or both."""

    text: str = ""
    tool_invocations: List[ToolInvocation] = Field(default_factory=list)


class CompletionResult(BaseModel):
    text: str = ""
    tool_invocations: List[ToolInvocation] = Field(default_factory=list)
    final: bool = True
    token_count: int = 0
    time_to_first_token_ms: Optional[float] = None
    total_time_ms: float = 0.0
    tokens_per_second: float = 0.0


# --- Preference models ---
class Persona(BaseModel):
    """A named investment recipe: curated tag sets plus their weights."""

    id: str
    name: str
    description: str = ""
    positive_tags: List[str] = Field(default_factory=list)
    negative_tags: List[str] = Field(default_factory=list)
    red_flag_tags: List[str] = Field(default_factory=list)
    weights: Dict[str, float] = Field(default_factory=dict)
    system_prompt: str = ""

    @field_validator("positive_tags", "negative_tags", "red_flag_tags", mode="before")
    @classmethod
    def _normalize_tag_lists(cls, value):
        return normalize_tags(value)

    @field_validator("weights", mode="before")
    @classmethod
    def _normalize_weight_keys(cls, value):
        return {normalize_tag(k): float(v) for k, v in (value or {}).items()}

    def categories_of(self, tag: str) -> List[str]:
        """Every tag set ``tag`` belongs to; the sets are not required to be disjoint."""
        sets = (
            ("positive", self.positive_tags),
            ("negative", self.negative_tags),
            ("red_flag", self.red_flag_tags),
        )
        return [category for category, tags in sets if tag in tags]

    def category_of(self, tag: str) -> Optional[str]:
        categories = self.categories_of(tag)
        return categories[0] if categories else None


class LearnedWeight(BaseModel):
    """Per (persona, tag) like-ratio learned from feedback.

    ``weight`` is always derived from the counts, whatever value is passed in.
    """

    persona_id: str
    tag: str
    weight: float = 0.0
    like_count: int = Field(default=0, ge=0)
    dislike_count: int = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=_now)

    @model_validator(mode="after")
    def _derive_weight(self):
        self.weight = self.compute(self.like_count, self.dislike_count)
        return self

    @staticmethod
    def compute(like_count: int, dislike_count: int) -> float:
        return (like_count - dislike_count) / max(like_count + dislike_count, 1)

    def recompute(self) -> "LearnedWeight":
        self.weight = self.compute(self.like_count, self.dislike_count)
        self.last_updated = _now()
        return self


class FeatureSnapshot(BaseModel):
    """Features of an entity at the time it was seen or scored."""

    industry: Optional[str] = None
    seniority: Optional[str] = None
    region: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize(cls, value):
        return normalize_tags(value)


class InteractionRecord(BaseModel):
    entity_id: str
    entity_type: EntityType = EntityType.PERSON
    action: Action
    timestamp: datetime = Field(default_factory=_now)
    features: FeatureSnapshot = Field(default_factory=FeatureSnapshot)


class MatchResult(BaseModel):
    """Explainable score of a feature snapshot against one persona."""

    score: int = Field(ge=0, le=100)
    label: MatchLabel
    reasons: List[str] = Field(default_factory=list)
    persona_id: Optional[str] = None
    matched_positive: List[str] = Field(default_factory=list)
    matched_negative: List[str] = Field(default_factory=list)
    matched_red_flags: List[str] = Field(default_factory=list)
    matched_learned: List[str] = Field(default_factory=list)
    confidence: int = Field(default=0, ge=0, le=100)


class Candidate(BaseModel):
    """A person or company surfaced to the investor."""

    id: str
    name: str
    entity_type: EntityType = EntityType.PERSON
    title: Optional[str] = None
    company: Optional[str] = None
    company_id: Optional[str] = None
    location: Optional[str] = None
    summary: Optional[str] = None
    features: FeatureSnapshot = Field(default_factory=FeatureSnapshot)
