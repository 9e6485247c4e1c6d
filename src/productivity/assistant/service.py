"""Chat exchanges with the assistant, persisted per user."""

from collections.abc import Callable
from datetime import date

import structlog
from sqlmodel import Session, select

from productivity.aggregators.summary import local_today
from productivity.assistant.agent import AIResponder, PydanticAIResponder
from productivity.assistant.context import build_user_context
from productivity.db.models import ChatMessage, User
from productivity.errors import ChatDisabled

logger = structlog.get_logger()


class AssistantService:
    """Answers user messages from their own data.

    Args:
        session: Database session.
        responder: Produces the reply text.
        today: Clock for the context's "today".
    """

    def __init__(
        self,
        session: Session,
        responder: AIResponder | None = None,
        today: Callable[[], date] = local_today,
    ) -> None:
        self.session = session
        self.responder = responder or PydanticAIResponder()
        self._today = today

    async def send_message(self, user: User, message: str) -> ChatMessage:
        """Answer ``message`` and store the exchange.

        Raises:
            ChatDisabled: The user turned the assistant off.
        """
        if not user.chat_enabled:
            raise ChatDisabled("The assistant is disabled for this user")

        message = message.strip()
        context = build_user_context(self.session, user, self._today())
        response = await self.responder.respond(message, context)

        chat = ChatMessage(user_id=user.id, message=message, response=response)
        self.session.add(chat)
        self.session.commit()
        self.session.refresh(chat)
        logger.info("Assistant replied", user_id=user.id, chars=len(response))
        return chat

    def history(self, user: User, limit: int = 20) -> list[ChatMessage]:
        """Most recent exchanges, newest first."""
        statement = (
            select(ChatMessage)
            .where(ChatMessage.user_id == user.id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(limit)
        )
        return list(self.session.exec(statement).all())
