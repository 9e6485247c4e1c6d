"""Assistant that answers questions from the user's tasks, events and habits."""

from productivity.assistant.agent import AIResponder, PydanticAIResponder
from productivity.assistant.context import build_user_context
from productivity.assistant.service import AssistantService

__all__ = ["AIResponder", "PydanticAIResponder", "AssistantService", "build_user_context"]
