"""Data models for the live host pipeline"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from enum import Enum
import numpy as np


class SystemStatus(str, Enum):
    """Process-wide status, projected from queue and flag state"""
    IDLE = "idle"
    CAPTURING = "capturing"
    ACTIVE = "active"
    THINKING = "thinking"
    SPEAKING = "speaking"


class Intent(str, Enum):
    """Answer intents the inference service may return"""
    CHAT_RESPONSE = "chat_response"
    VISUAL_SPILL = "visual_spill"
    GIFT_THANKS = "gift_thanks"
    CHECKOUT_THANKS = "checkout_thanks"
    IGNORE = "ignore"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResponseMode(str, Enum):
    """Reactive cycles answer chats, proactive cycles fill silence"""
    REACTIVE = "reactive"
    PROACTIVE = "proactive"


class HostGender(str, Enum):
    FEMALE = "female"
    MALE = "male"


class HostPersonality(str, Enum):
    ENTHUSIAST = "enthusiast"
    EXPERT = "expert"
    COMPANION = "companion"
    EXPRESSIVE = "expressive"


class QuotaStatus(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    EXHAUSTED = "exhausted"


class Region(BaseModel):
    """Capture rectangle in display-surface coordinates"""
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(ge=0)
    height: float = Field(ge=0)

    @classmethod
    def from_list(cls, values: List[float]) -> "Region":
        x, y, width, height = values
        return cls(x=x, y=y, width=width, height=height)


class BoundingBox(BaseModel):
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def height(self) -> float:
        return self.y1 - self.y0


class OCRLine(BaseModel):
    """One recognized text line with its box and confidence (0-100)"""
    text: str
    bbox: BoundingBox
    confidence: float


class ChatMessage(BaseModel):
    """Chat message reconstructed from the chat region"""
    model_config = ConfigDict(frozen=True)

    id: str
    author: str = "Viewer"
    body: str
    observed_at: float


class AIAnswer(BaseModel):
    """Answer produced by one response cycle"""
    intent: Intent = Intent.IGNORE
    text_answer: str = ""
    detected_product_id: Optional[str] = None
    confidence: Confidence = Confidence.LOW

    @field_validator("detected_product_id", mode="before")
    @classmethod
    def _product_id_as_text(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _known_confidence(cls, value):
        if isinstance(value, str) and value.lower() in {c.value for c in Confidence}:
            return value.lower()
        return Confidence.LOW

    @classmethod
    def ignore(cls) -> "AIAnswer":
        return cls(intent=Intent.IGNORE, text_answer="", confidence=Confidence.LOW)


class LogEntry(BaseModel):
    """Answer log entry, appended when its audio starts playing"""
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: float
    user: str
    question: str
    answer: str
    intent: Intent


class AudioQueueItem(BaseModel):
    """Decoded clip waiting for the playback scheduler"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    buffer: np.ndarray
    sample_rate: int
    log_entry: LogEntry


class ProductSpec(BaseModel):
    label: str
    value: str


class ProductData(BaseModel):
    """Showcase item sent as seller-mode context"""
    id: str
    etalase_no: str
    name: str
    category: str = "General"
    price: str
    stock: int = 0
    description: str = ""
    specifications: List[ProductSpec] = []


class HostProfile(BaseModel):
    """Active voice and persona configuration"""
    gender: HostGender = HostGender.FEMALE
    personality: HostPersonality = HostPersonality.ENTHUSIAST
    seller_mode: bool = True
    role_description: str = ""
    username: str = ""
    gift_detection_enabled: bool = False
    host_vision_enabled: bool = True

    @property
    def requires_vision(self) -> bool:
        return self.seller_mode or self.host_vision_enabled


class SessionState(BaseModel):
    """In-memory state shared by the pipeline stages"""
    profile: HostProfile = HostProfile()
    products: List[ProductData] = []
    recent_chats: List[ChatMessage] = []  # most recent first
    logs: List[LogEntry] = []             # most recent first
    active_product_id: Optional[str] = None
    latency_ms: float = 0.0
    recent_chat_limit: int = 50
    log_limit: int = 200

    @property
    def last_answer(self) -> str:
        return self.logs[0].answer if self.logs else ""

    def add_chats(self, messages: List[ChatMessage]):
        self.recent_chats = (list(reversed(messages)) + self.recent_chats)[:self.recent_chat_limit]

    def add_log(self, entry: LogEntry):
        self.logs = ([entry] + self.logs)[:self.log_limit]


class AnswerContext(BaseModel):
    """Everything the answer capability receives besides image and batch"""
    profile: HostProfile
    products: List[ProductData] = []
    mode: ResponseMode
    last_answer: str = ""


# Control API payloads

class RunRequest(BaseModel):
    running: bool


class HostUpdate(BaseModel):
    gender: Optional[HostGender] = None
    personality: Optional[HostPersonality] = None
    seller_mode: Optional[bool] = None
    role_description: Optional[str] = None
    username: Optional[str] = None
    gift_detection_enabled: Optional[bool] = None
    host_vision_enabled: Optional[bool] = None


class StatusResponse(BaseModel):
    status: SystemStatus
    capturing: bool
    running: bool
    pending_chats: int
    audio_queue: int
    total_chats: int
    total_answered: int
    latency_ms: float
    quota_status: QuotaStatus
    active_product_id: Optional[str] = None
    last_error: Optional[str] = None


class ValidationResult(BaseModel):
    success: bool
    latency_ms: float = 0.0
    model: str = "-"
    message: str = ""
    quota_exhausted: bool = False
