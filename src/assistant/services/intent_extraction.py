from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from ..domain.intents import TOOL_DECLARATIONS, ToolInvocation
from ..infrastructure.store import BusinessStore
from ..observability.metrics import EXTRACTION_FAILURES
from .llm_gateway import LLMGateway, get_gateway

logger = logging.getLogger(__name__)

MAX_KNOWN_ENTITIES = 60

EXTRACTION_SYSTEM_PROMPT = (
    "You detect data-changing instructions in a business assistant conversation. "
    "Call manage_kpis, manage_tasks or manage_documents only when the user explicitly asks to "
    "create, update, delete, assign, re-categorize or analyze something. "
    "Use identifiers and names exactly as they appear in the list of known entities. "
    "If the message is a question or small talk, do not call any tool."
)


def known_entity_catalog(store: BusinessStore, tenant_id: str, limit: int = MAX_KNOWN_ENTITIES) -> List[str]:
    """Compact enumeration of existing entities the model may reference."""
    entries: List[str] = []
    seen_kpis = set()
    for kpi in store.list_kpis(tenant_id):
        key = kpi.name.strip().lower()
        if key in seen_kpis:
            continue
        seen_kpis.add(key)
        entries.append(f"kpi: {kpi.name}")
    for task in store.list_tasks(tenant_id):
        entries.append(f"task [{task.id}]: {task.title} ({task.status})")
    for doc in store.list_documents(tenant_id):
        entries.append(f"document [{doc.id}]: {doc.file_name} ({doc.category or 'uncategorized'})")
    return entries[:limit]


def _extraction_messages(utterance: str, known_entity_names: List[str]) -> List[Dict[str, Any]]:
    known = "\n".join(f"- {name}" for name in known_entity_names) or "- (none)"
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "system", "content": "KNOWN ENTITIES:\n" + known},
        {"role": "user", "content": utterance},
    ]


def _parse_tool_calls(message: Dict[str, Any]) -> List[ToolInvocation]:
    invocations: List[ToolInvocation] = []
    for call in message.get("tool_calls") or []:
        if not isinstance(call, dict):
            continue
        fn = call.get("function") or {}
        name = fn.get("name")
        if not name:
            continue
        arguments = fn.get("arguments")
        if isinstance(arguments, dict):
            # Some gateways hand back decoded objects; keep the contract "unparsed JSON"
            arguments = json.dumps(arguments)
        invocations.append(ToolInvocation(name=str(name), arguments=str(arguments or ""), call_id=call.get("id")))
    return invocations


def extract_intents(
    utterance: str,
    known_entity_names: List[str],
    gateway: Optional[LLMGateway] = None,
) -> List[ToolInvocation]:
    """Ask the model which tools, if any, the utterance calls for.

    Never raises: any failure is logged and reported as "no intents" so the
    conversational reply can still go ahead.
    """
    if not (utterance or "").strip():
        return []
    try:
        gw = gateway or get_gateway()
        message = gw.complete_with_tools(
            _extraction_messages(utterance, known_entity_names),
            tools=TOOL_DECLARATIONS,
            tool_choice="auto",
        )
        invocations = _parse_tool_calls(message)
    except Exception as exc:
        EXTRACTION_FAILURES.inc()
        logger.warning("extraction_failed", extra={"err": str(exc)})
        return []
    logger.info("intents_extracted", extra={"count": len(invocations), "tools": [i.name for i in invocations]})
    return invocations
