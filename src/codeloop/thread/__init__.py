"""Conversation thread model for codeloop.

Provides the step state machine, typed message content and the prompt
compaction helpers applied before each model call.
"""

from .compaction import elide_redundant_context, omit_old_messages
from .models import (
    AgentStatus,
    ContextItem,
    FileSnippet,
    ImageItem,
    NoneStatus,
    PausedStatus,
    RunningStatus,
    StoppedWithErrorStatus,
    TaggedFunctionResponse,
    TaggedMessage,
    TextFileItem,
    TextItem,
    UserVisibleLog,
    is_live,
    owned_by,
)
from .steps import Step, Thread, ToolUseStep

__all__ = [
    "AgentStatus",
    "ContextItem",
    "FileSnippet",
    "ImageItem",
    "NoneStatus",
    "PausedStatus",
    "RunningStatus",
    "Step",
    "StoppedWithErrorStatus",
    "TaggedFunctionResponse",
    "TaggedMessage",
    "TextFileItem",
    "TextItem",
    "Thread",
    "ToolUseStep",
    "UserVisibleLog",
    "elide_redundant_context",
    "is_live",
    "omit_old_messages",
    "owned_by",
]
