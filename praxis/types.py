"""Typed request/response model for the orchestration layer."""
from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.errors import ErrorClass

__all__ = [
    "FeatureType",
    "Priority",
    "ChatTurn",
    "Attachment",
    "Goal",
    "TaskRef",
    "NoteRef",
    "UserProfile",
    "ConversationContext",
    "Request",
    "Session",
    "Citation",
    "ProviderOutput",
    "Response",
    "ErrorClass",
    "FALLBACK_MODEL",
]

# model_used reported by degraded responses
FALLBACK_MODEL = "fallback"


class FeatureType(str, Enum):
    """Closed set of request categories; drives routing and cache policy."""
    CHAT = "chat"
    COMMAND_PARSE = "command_parse"
    TASK_PARSING = "task_parsing"
    CALENDAR_EVENT_PARSING = "calendar_event_parsing"
    GMAIL_EVENT_EXTRACTION = "gmail_event_extraction"
    NOTE_GENERATION = "note_generation"
    NOTE_SUMMARY = "note_summary"
    NOTE_AUTOFILL = "note_autofill"
    MINDMAP_GENERATION = "mindmap_generation"
    STRATEGIC_BRIEFING = "strategic_briefing"
    RESEARCH_WITH_SOURCES = "research_with_sources"
    VISION_OCR = "vision_ocr"
    VISION_EVENT_DETECTION = "vision_event_detection"
    TASK_INSIGHTS = "task_insights"
    COMPLETION_SUMMARY = "completion_summary"
    COMPLETION_IMAGE = "completion_image"
    IMAGE_GENERATE = "image_generate"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str


class Attachment(BaseModel):
    """Inline file sent alongside a prompt (images for vision features)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["image", "file"] = "image"
    mime_type: str
    base64: str
    url: Optional[str] = None

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


class Goal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    term: str = "Short-term"
    status: str = "active"


class TaskRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    category: Optional[str] = None
    status: Optional[str] = None


class NoteRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content: str = ""
    tags: List[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    personality_mode: Optional[Literal["supportive", "tough_love", "analytical", "motivational"]] = None
    subscription_tier: Literal["free", "pro", "enterprise"] = "free"


class ConversationContext(BaseModel):
    """Caller-owned state passed through to prompt building, never mutated."""
    model_config = ConfigDict(frozen=True)

    conversation_history: List[ChatTurn] = Field(default_factory=list)
    user_goals: List[Goal] = Field(default_factory=list)
    recent_tasks: List[TaskRef] = Field(default_factory=list)
    recent_notes: List[NoteRef] = Field(default_factory=list)
    user_profile: Optional[UserProfile] = None
    current_time: Optional[datetime] = None
    location: Optional[str] = None


class Request(BaseModel):
    """One unit of work submitted by a caller.

    Routing is static per ``feature_type``; ``priority`` and the profile's
    ``subscription_tier`` are not routing inputs and are reported with the
    request's usage telemetry.
    """
    model_config = ConfigDict(frozen=True)

    caller_id: str
    message: str
    feature_type: FeatureType
    attachments: List[Attachment] = Field(default_factory=list)
    context: ConversationContext = Field(default_factory=ConversationContext)
    priority: Priority = Priority.MEDIUM


class Session(BaseModel):
    """Explicit chat session owned by the caller and passed per request.

    The orchestrator keeps no chat handle of its own; after a successful
    reply the caller records the exchange with :meth:`record`.
    """
    session_id: str
    history: List[ChatTurn] = Field(default_factory=list)
    max_turns: int = Field(20, ge=2)

    def record(self, user_message: str, assistant_reply: str) -> None:
        self.history.append(ChatTurn(role="user", content=user_message))
        self.history.append(ChatTurn(role="assistant", content=assistant_reply))
        if len(self.history) > self.max_turns:
            del self.history[: len(self.history) - self.max_turns]


class Citation(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    url: str
    title: str = ""
    relevance: float = 0.9


class ProviderOutput(BaseModel):
    """Raw result of one successful adapter invocation."""
    model_config = ConfigDict(frozen=True)

    text: str
    model: str
    tokens_used: int = 0
    cost_cents: float = 0.0
    confidence: float = Field(0.8, ge=0.0, le=1.0)
    sources: List[Citation] = Field(default_factory=list)


class Response(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    model_used: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    structured_payload: Optional[Any] = None
    tokens_used: int = 0
    cost_cents: float = 0.0
    processing_time_ms: float = 0.0
    cache_hit: bool = False
    fallback_used: bool = False
    sources: List[Citation] = Field(default_factory=list)
    # Last failure class on degraded responses
    error_class: Optional[ErrorClass] = None

    @property
    def degraded(self) -> bool:
        return self.model_used == FALLBACK_MODEL
