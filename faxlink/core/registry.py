from __future__ import annotations

from typing import Dict, Optional, Protocol

from faxlink.schemas.correlation import ClarificationArtifact, TaskHandoff
from faxlink.schemas.extraction import ExtractionResult


class TaskHandler(Protocol):
    """Per-context-type continuation of a claimed conversation."""

    context_type: str

    def handle(self, handoff: TaskHandoff) -> None: ...


class NewRequestHandler(Protocol):
    """Receives documents that answer no outstanding context."""

    def handle(self, extraction: ExtractionResult) -> None: ...


class ClarificationRenderer(Protocol):
    """Turns a clarification artifact into something the user can fax back."""

    def render(self, user_id: str, artifact: ClarificationArtifact) -> None: ...


class HandlerRegistry:
    def __init__(self) -> None:
        self._task_handlers: Dict[str, TaskHandler] = {}
        self.new_request_handler: Optional[NewRequestHandler] = None
        self.clarification_renderer: Optional[ClarificationRenderer] = None

    def register_task_handler(self, handler: TaskHandler) -> None:
        context_type = str(handler.context_type)
        if context_type in self._task_handlers:
            raise ValueError(f"Task handler already registered: {context_type}")
        self._task_handlers[context_type] = handler

    def get_task_handler(self, context_type: str) -> TaskHandler | None:
        return self._task_handlers.get(str(context_type))

    def list_task_handlers(self) -> list[TaskHandler]:
        return list(self._task_handlers.values())

    def set_new_request_handler(self, handler: NewRequestHandler) -> None:
        self.new_request_handler = handler

    def set_clarification_renderer(self, renderer: ClarificationRenderer) -> None:
        self.clarification_renderer = renderer
