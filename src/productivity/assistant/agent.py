"""Assistant responders. The default one runs a Pydantic AI agent over OpenRouter."""

import json
import os
from typing import Any, Protocol

import structlog
from pydantic import BaseModel
from pydantic_ai import Agent, RunContext

from productivity.config.settings import settings

logger = structlog.get_logger()


class AIResponder(Protocol):
    """Anything that can answer a message given the user's context."""

    async def respond(self, message: str, context: dict[str, Any]) -> str: ...


class AssistantDependencies(BaseModel):
    """Dependencies passed to the agent."""

    user_name: str
    current_date: str
    context: dict[str, Any]


SYSTEM_PROMPT = """You are ProductiBot, a personal productivity assistant for a student.

You have access to the user's:
- Tasks (including coursework synced from Tecsup)
- Calendar events (classes, exams and personal events)
- Daily habits and their progress

When responding:
- Be brief (4-5 sentences at most) and practical
- Reference specific tasks, events or habits when relevant
- Help prioritize overdue and high-priority work
"""

# Global agent instance (lazily initialized)
_agent: Agent[AssistantDependencies, str] | None = None


def _create_agent() -> Agent[AssistantDependencies, str]:
    """Create and configure the assistant agent."""
    # OpenRouter models need openai: prefix for pydantic-ai
    model_name = f"openai:{settings.openrouter.model}"

    agent = Agent(
        model_name,
        deps_type=AssistantDependencies,
        system_prompt=SYSTEM_PROMPT,
    )

    @agent.system_prompt
    def user_data(ctx: RunContext[AssistantDependencies]) -> str:
        return (
            f"The user is {ctx.deps.user_name}. Today is {ctx.deps.current_date}.\n"
            f"Their current data:\n{json.dumps(ctx.deps.context, ensure_ascii=False, indent=2)}"
        )

    @agent.tool
    def get_overdue_tasks(ctx: RunContext[AssistantDependencies]) -> list[dict[str, Any]]:
        """Get tasks past their due date that are not completed.

        Returns:
            List of tasks with title, priority and due date.
        """
        return ctx.deps.context.get("overdue", [])

    @agent.tool
    def get_upcoming_tasks(ctx: RunContext[AssistantDependencies]) -> list[dict[str, Any]]:
        """Get open tasks due in the next 7 days.

        Returns:
            List of tasks with title, priority and due date.
        """
        return ctx.deps.context.get("upcoming", [])

    return agent


def get_agent() -> Agent[AssistantDependencies, str]:
    """Get or create the agent (lazy initialization)."""
    global _agent
    if _agent is None:
        _agent = _create_agent()
    return _agent


class PydanticAIResponder:
    """Responder backed by the Pydantic AI agent."""

    async def respond(self, message: str, context: dict[str, Any]) -> str:
        """Run the agent with a user message.

        Args:
            message: User's message/question.
            context: Output of ``build_user_context``.

        Returns:
            The agent's response.
        """
        api_key = settings.openrouter.api_key.get_secret_value()
        if not api_key:
            logger.warning("OpenRouter API key not configured")
            return "The assistant is not configured. Set OPENROUTER_API_KEY to enable it."

        # Configure OpenAI client for OpenRouter
        os.environ["OPENAI_API_KEY"] = api_key
        os.environ["OPENAI_BASE_URL"] = settings.openrouter.base_url

        deps = AssistantDependencies(
            user_name=context.get("user", {}).get("name", ""),
            current_date=context.get("today", {}).get("date", ""),
            context=context,
        )
        result = await get_agent().run(message, deps=deps)
        return result.output
