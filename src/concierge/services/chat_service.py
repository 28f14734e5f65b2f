"""Calling layer: persists a chat turn around one workflow run."""

import asyncio
import logging
from typing import Callable, List, Optional

from concierge.lib.config import ChatConfig
from concierge.lib.logging_config import AuditLogger, get_audit_logger
from concierge.models.chat import StoredMessage
from concierge.models.conversation import ConversationHistory, ConversationTurn, MessageRole
from concierge.models.workflow import GuardrailFailureResult, WorkflowInput, WorkflowResult
from concierge.services.message_store import MessageStore
from concierge.services.workflow_orchestrator import WorkflowOrchestrator


WorkflowFactory = Callable[[], WorkflowOrchestrator]


def to_conversation_history(messages: List[StoredMessage]) -> ConversationHistory:
    """Map stored messages to turns: assistant text as output, the rest as user input."""
    history: ConversationHistory = []
    for message in messages:
        if message.role == MessageRole.ASSISTANT.value:
            history.append(ConversationTurn.assistant(message.content))
        else:
            history.append(ConversationTurn.user(message.content))
    return history


class ChatService:
    """Runs chat turns end to end, answering every workflow outcome with text."""

    def __init__(
        self,
        store: MessageStore,
        workflow_factory: WorkflowFactory,
        settings: Optional[ChatConfig] = None,
        audit_logger: Optional[AuditLogger] = None
    ):
        """Initialize the chat service.

        Args:
            store: Session and message persistence
            workflow_factory: Builds the orchestrator on first use; may raise
                ConfigurationError when the backend credential is missing
            settings: Notice texts and the per-turn timeout
            audit_logger: Audit sink for session events
        """
        self.store = store
        self.settings = settings or ChatConfig()
        self.logger = logging.getLogger(__name__)
        self._workflow_factory = workflow_factory
        self._workflow: Optional[WorkflowOrchestrator] = None
        self._audit = audit_logger or get_audit_logger()

    def _get_workflow(self) -> WorkflowOrchestrator:
        if self._workflow is None:
            self._workflow = self._workflow_factory()
        return self._workflow

    async def send_message(self, session_id: str, message: str, user_id: Optional[str] = None) -> str:
        """
        Persist ``message``, run the workflow on it and persist the reply.

        Workflow errors never escape: they are logged and turned into the
        configured failure notice, which is stored like any other reply.

        Raises:
            ValueError: If the store rejects ``session_id``
            OSError: If the store cannot persist the turn
        """
        await self.store.upsert_session(session_id, user_id)
        saved = await self.store.append_message(session_id, MessageRole.USER, message)

        stored = await self.store.get_history(session_id)
        history = to_conversation_history([m for m in stored if m.message_id != saved.message_id])

        try:
            result = await asyncio.wait_for(
                self._get_workflow().run_workflow(WorkflowInput(input_as_text=message), history),
                timeout=self.settings.turn_timeout,
            )
            reply = self._reply_text(session_id, result)
            outcome = result.type
        except Exception as e:
            self.logger.error(f"Workflow failed for session {session_id}: {type(e).__name__}: {e}", exc_info=True)
            reply = self.settings.failure_notice
            outcome = "error"

        await self.store.append_message(session_id, MessageRole.ASSISTANT, reply)
        self._audit.log_session_event(
            event_type="chat_turn",
            session_id=session_id,
            action="send_message",
            result=outcome,
            metadata={"user_id": user_id, "history_length": len(history)},
        )
        return reply

    def _reply_text(self, session_id: str, result: WorkflowResult) -> str:
        if isinstance(result, GuardrailFailureResult):
            self.logger.warning(
                f"Guardrail rejected message in session {session_id}: {result.model_dump_json()}"
            )
            return self.settings.guardrail_notice
        if result.output_text:
            return result.output_text
        return self.settings.unexpected_result_notice
