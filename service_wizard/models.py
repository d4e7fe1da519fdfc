"""
Data models for Service Wizard Bot

Contains enums, dataclasses, and Pydantic models for wizard definitions,
chat sessions and the HTTP/webhook contracts.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class FieldKind(Enum):
    """How a wizard step receives its answer"""
    FREE_TEXT = "text"
    FIXED_CHOICE = "keyboard"


class ValidatorTag(Enum):
    """Validator applied to a free-text step"""
    NONE = "none"
    IP_ADDRESS = "ip"
    PORT_NUMBER = "port"
    NON_EMPTY_TEXT = "text"


class TurnOutcome(Enum):
    """Result of one conversational turn handled by the engine"""
    MENU_SHOWN = "menu_shown"
    STARTED = "started"
    UNKNOWN_SERVICE = "unknown_service"
    REJECTED = "rejected"
    ADVANCED = "advanced"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NOTHING_TO_CANCEL = "nothing_to_cancel"
    IGNORED = "ignored"
    NO_SESSION = "no_session"
    RESET = "reset"
    HELP_SHOWN = "help_shown"
    FAILED = "failed"


# ============================================================================
# Constants
# ============================================================================

# Callback token prefix for the service-type menu
SERVICE_TYPE_TOKEN_PREFIX = "service_type_"

# Returned by SessionStore.current_step_of when no session exists
NO_SESSION_STEP = -1


# ============================================================================
# Wizard Definitions
# ============================================================================

@dataclass(frozen=True)
class Choice:
    """One button of a fixed-choice step: shown label, callback token, stored value"""
    label: str
    token: str
    value: str


@dataclass(frozen=True)
class FieldSpec:
    """
    A single wizard step.

    A free-text step carries exactly one validator; a fixed-choice step
    carries no validator and a non-empty set of choices. ``post_process``
    runs on the accepted text before it is stored.
    """
    key: str
    prompt: str
    kind: FieldKind = FieldKind.FREE_TEXT
    validator: Optional[ValidatorTag] = None
    choices: Tuple[Choice, ...] = ()
    post_process: Optional[Callable[[str], str]] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.key:
            raise ValueError("Field key must not be empty")

        # Unset validator defaults by kind
        if self.validator is None:
            default = ValidatorTag.NONE if self.kind == FieldKind.FIXED_CHOICE else ValidatorTag.NON_EMPTY_TEXT
            object.__setattr__(self, "validator", default)

        if self.kind == FieldKind.FIXED_CHOICE:
            if self.validator != ValidatorTag.NONE:
                raise ValueError(f"Fixed-choice field '{self.key}' cannot have a validator")
            if not self.choices:
                raise ValueError(f"Fixed-choice field '{self.key}' needs at least one choice")
            tokens = [choice.token for choice in self.choices]
            if len(set(tokens)) != len(tokens):
                raise ValueError(f"Fixed-choice field '{self.key}' has duplicate choice tokens")
        else:
            if self.validator == ValidatorTag.NONE:
                raise ValueError(f"Free-text field '{self.key}' needs a validator")
            if self.choices:
                raise ValueError(f"Free-text field '{self.key}' cannot have choices")

    @property
    def is_fixed_choice(self) -> bool:
        return self.kind == FieldKind.FIXED_CHOICE

    def choice_for(self, token: str) -> Optional[Choice]:
        """Return the choice matching a callback token, if any"""
        for choice in self.choices:
            if choice.token == token:
                return choice
        return None


@dataclass(frozen=True)
class WizardDefinition:
    """Immutable description of the wizard for one service type"""
    service_type: str
    display_name: str
    fields: Tuple[FieldSpec, ...]
    webhook_route: str
    summary_template: Callable[[Dict[str, Any]], str] = field(compare=False)

    def __post_init__(self):
        if not self.service_type:
            raise ValueError("service_type must not be empty")
        if not self.fields:
            raise ValueError(f"Wizard '{self.service_type}' has no fields")
        keys = [spec.key for spec in self.fields]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Wizard '{self.service_type}' has duplicate field keys")
        if not self.webhook_route.startswith("/"):
            raise ValueError(f"Webhook route must start with '/', got {self.webhook_route}")

    @property
    def total_steps(self) -> int:
        return len(self.fields)

    @property
    def menu_token(self) -> str:
        return f"{SERVICE_TYPE_TOKEN_PREFIX}{self.service_type}"

    def field_at(self, index: int) -> Optional[FieldSpec]:
        """Field for a step index, None when out of range"""
        if 0 <= index < len(self.fields):
            return self.fields[index]
        return None

    def format_summary(self, data: Dict[str, Any]) -> str:
        return self.summary_template(data)


# ============================================================================
# Sessions and Events
# ============================================================================

@dataclass
class Session:
    """Live per-chat progress through a wizard"""
    service_type: str
    current_step: int = 0
    collected_data: Dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    last_activity_at: float = 0.0

    def snapshot(self) -> "Session":
        """Detached copy handed out by the store"""
        return deepcopy(self)


@dataclass(frozen=True)
class SessionMetadata:
    """Originating user captured when the wizard was selected"""
    chat_id: int
    user_id: Optional[int] = None
    username: Optional[str] = None


@dataclass(frozen=True)
class ChatEvent:
    """Inbound chat event as handed over by the transport"""
    chat_id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    text: str = ""


@dataclass
class TurnResult:
    """Outcome of one engine operation"""
    outcome: TurnOutcome
    service_type: Optional[str] = None
    step: int = NO_SESSION_STEP
    delivered: Optional[bool] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


# ============================================================================
# Pydantic Models for Webhook and API
# ============================================================================

class WebhookPayload(BaseModel):
    """Body POSTed to the automation webhook on wizard completion"""
    chat_id: int = Field(..., description="Chat the wizard ran in")
    user_id: Optional[int] = Field(None, description="Originating user id")
    username: Optional[str] = Field(None, description="Originating username")
    service_type: str = Field(..., description="Wizard service type")
    service: Dict[str, Any] = Field(..., description="Collected field values")


class SendTextRequest(BaseModel):
    """Request model for sending a text message through the bot"""
    chat_id: Optional[int] = Field(None, description="Target chat (defaults to DEFAULT_CHAT_ID)")
    text: str = Field(..., description="Message text")


class SendTextResponse(BaseModel):
    """Response model for a sent message"""
    ok: bool = Field(..., description="Whether the message was sent")
    message_id: int = Field(..., description="Telegram message id")
    chat_id: int = Field(..., description="Chat the message was sent to")


class HealthResponse(BaseModel):
    """Response model for health check"""
    ok: bool = Field(..., description="Service is up")
    transport_connected: bool = Field(
        ..., serialization_alias="transportConnected", description="Chat transport is running"
    )
    active_sessions: int = Field(..., description="Sessions currently held in memory")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")


class MetricsResponse(BaseModel):
    """Response model for metrics endpoint"""
    total_sessions_created: int = Field(..., description="Wizards started")
    active_sessions_count: int = Field(..., description="Sessions currently held in memory")
    completed_sessions_count: int = Field(..., description="Wizards completed")
    cancelled_sessions_count: int = Field(..., description="Wizards cancelled by the user")
    delivery_failures_count: int = Field(..., description="Completed wizards not forwarded")


class AdminClearSessionsResponse(BaseModel):
    """Response model for clearing sessions"""
    sessions_deleted: int = Field(..., description="Number of sessions deleted")
    message: str = Field(..., description="Operation result message")
