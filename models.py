# models.py
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    question: str = Field(..., min_length=1, description="Visitor question, trimmed")
    language: Literal["en", "ru"] = "en"
    history: List[ChatMessage] = Field(default_factory=list)


class CallerInfo(BaseModel):
    """Rate-limiting metadata sent by the widget. Client-supplied, never trusted."""
    caller_id: str = ""
    user_agent: str = ""
    ip_address: str = ""
    referrer: str = ""


class ChatResponse(BaseModel):
    success: bool
    answer: Optional[str] = None
    error: Optional[str] = None


class RateLimitDecision(BaseModel):
    allowed: bool
    reason: Optional[str] = None
