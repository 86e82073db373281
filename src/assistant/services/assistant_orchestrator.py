from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from ..domain.chat_models import AssistantRequest
from ..domain.operations import ExecutionReport
from ..infrastructure.config_store import (
    CONTEXTUAL_PROMPT_KEY,
    DIAGNOSIS_PROMPT_KEY,
    PromptConfigStore,
    get_prompt_config_store,
)
from ..infrastructure.store import BusinessStore, get_store
from ..security.auth import Principal
from ..security.rbac import Permission, is_authorized
from .intent_extraction import extract_intents, known_entity_catalog
from .llm_gateway import LLMGateway
from .operation_executor import OperationExecutor
from .prompt_builder import build_diagnosis_prompt, build_system_prompt
from .streaming_relay import RelayResult, open_relay

logger = logging.getLogger(__name__)

CONTEXTUAL_MODE = "contextual"
DIAGNOSIS_MODE = "diagnosis"


@dataclass
class PreparedTurn:
    system_prompt: str
    report: ExecutionReport = field(default_factory=ExecutionReport)


class AssistantOrchestrator:
    """Runs one assistant turn: extract, apply, build prompt, relay.

    The phases are strictly sequential; generation starts only after every
    extracted intent has been handled.
    """

    def __init__(
        self,
        store: Optional[BusinessStore] = None,
        gateway: Optional[LLMGateway] = None,
        executor: Optional[OperationExecutor] = None,
        prompt_store: Optional[PromptConfigStore] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.store = store or get_store()
        self.gateway = gateway
        self.executor = executor or OperationExecutor(store=self.store)
        self.prompt_store = prompt_store or get_prompt_config_store()
        self._today = today or date.today

    def _apply_intents(self, request: AssistantRequest, principal: Optional[Principal]) -> ExecutionReport:
        if principal is None:
            return ExecutionReport()
        if not is_authorized(principal, Permission.DATA_WRITE):
            logger.info("extraction_skipped_read_only", extra={"user_id": principal.user_id})
            return ExecutionReport()
        try:
            known = known_entity_catalog(self.store, principal.tenant_id)
        except Exception as exc:
            logger.warning("entity_catalog_failed", extra={"err": str(exc)})
            known = []
        invocations = extract_intents(request.latest_user_utterance(), known, gateway=self.gateway)
        return self.executor.apply(invocations, principal)

    def prepare(self, request: AssistantRequest, principal: Optional[Principal]) -> PreparedTurn:
        if request.mode == DIAGNOSIS_MODE:
            template = self.prompt_store.get_prompt(DIAGNOSIS_PROMPT_KEY)
            return PreparedTurn(system_prompt=build_diagnosis_prompt(request.company_info, template))

        report = ExecutionReport()
        if request.mode == CONTEXTUAL_MODE:
            report = self._apply_intents(request, principal)
        prompt = build_system_prompt(
            request.context,
            report.applied,
            findings=report.findings,
            today=self._today(),
            base_instructions=self.prompt_store.get_prompt(CONTEXTUAL_PROMPT_KEY),
        )
        logger.info(
            "turn_prepared",
            extra={
                "mode": request.mode,
                "applied": len(report.applied),
                "rejected": len(report.rejected),
                "failed": len(report.failed),
            },
        )
        return PreparedTurn(system_prompt=prompt, report=report)

    def respond(self, request: AssistantRequest, principal: Optional[Principal]) -> RelayResult:
        turn = self.prepare(request, principal)
        return open_relay(turn.system_prompt, request.messages, turn.report.applied, gateway=self.gateway)
