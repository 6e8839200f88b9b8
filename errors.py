# errors.py
from typing import Optional


class ChatbotError(Exception):
    """Base class for every failure the webhook turns into a JSON error."""

    message_key = "generic_error"


# --- request parsing ---

class RequestError(ChatbotError):
    pass


class NoDataError(RequestError):
    message_key = "no_data"


class EmptyQuestionError(RequestError):
    message_key = "empty_question"


class InvalidJsonError(RequestError):
    message_key = "invalid_request"


# --- quota layer ---

class RateLimitDenied(ChatbotError):
    message_key = "rate_limit_denied"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# --- single provider call ---

class CallError(ChatbotError):
    pass


class QuotaExceeded(CallError):
    message_key = "rate_limit"


class ServiceUnavailable(CallError):
    message_key = "service_unavailable"


class Timeout(CallError):
    message_key = "timeout"


class ApiError(CallError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"API error {status}: {body}")
        self.status = status
        self.body = body


# --- dispatcher outcome ---

class DispatchError(ChatbotError):
    pass


class NoCandidateError(DispatchError):
    message_key = "no_answer"


class RateLimitExceeded(DispatchError):
    message_key = "rate_limit"


class MissingCredentialsError(DispatchError):
    message_key = "config_error"


class AllAttemptsFailed(DispatchError):
    def __init__(self, last_error: Optional[Exception]):
        super().__init__(f"All attempts failed. Last error: {last_error}")
        self.last_error = last_error

    @property
    def message_key(self) -> str:
        # surface the last failure's category, e.g. a persistent timeout
        if isinstance(self.last_error, ChatbotError):
            return self.last_error.message_key
        return ChatbotError.message_key
