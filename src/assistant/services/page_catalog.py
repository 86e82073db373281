from __future__ import annotations

from typing import Dict, List, Optional

from ..domain.chat_models import QuickAction, QuickActionsResponse

PAGE_NAMES: Dict[str, str] = {
    "/": "Dashboard",
    "/kpis": "KPIs",
    "/tasks": "Tasks",
    "/documents": "Documents",
    "/plans": "Plans",
    "/diagnosticos": "Diagnoses",
}

DEFAULT_PAGE_NAME = "the application"

QUICK_ACTIONS: Dict[str, List[QuickAction]] = {
    "/": [
        QuickAction(label="Summarize metrics", prompt="Summarize the key metrics on the dashboard"),
        QuickAction(label="Analyze trends", prompt="Analyze the main trends I can see on the dashboard"),
        QuickAction(label="Next actions", prompt="What are the 3 priority actions I should take this week?"),
        QuickAction(label="Project status", prompt="Give me an executive summary of the current project status"),
    ],
    "/kpis": [
        QuickAction(label="Explain KPI", prompt="Explain the KPI I am currently looking at"),
        QuickAction(label="Suggest improvement", prompt="Suggest how I can improve this KPI"),
        QuickAction(label="Compare with target", prompt="Compare the current KPI value with its target and analyze the gap"),
        QuickAction(label="Projection", prompt="Are we going to hit this KPI's target? Project the next 3 months"),
    ],
    "/tasks": [
        QuickAction(label="Urgent tasks", prompt="Show me the 5 most urgent tasks with their due dates and status"),
        QuickAction(label="Overdue tasks", prompt="Which tasks are overdue and what should I prioritize?"),
        QuickAction(label="Weekly summary", prompt="Summarize this week's task progress"),
        QuickAction(label="Suggest priorities", prompt="Based on the pending tasks, what should I do first?"),
    ],
    "/documents": [
        QuickAction(label="Not analyzed", prompt="How many documents are still waiting for analysis?"),
        QuickAction(label="Insights summary", prompt="Summarize the main insights from the analyzed documents"),
        QuickAction(label="By category", prompt="Show me how documents are distributed by category"),
    ],
    "/plans": [
        QuickAction(label="Latest plan", prompt="Summarize the most recent action plan and its progress"),
        QuickAction(label="Active plans", prompt="How many active plans do I have and which one needs the most attention?"),
        QuickAction(label="Upcoming milestones", prompt="What are the next important milestones of my active plans?"),
    ],
    "/diagnosticos": [
        QuickAction(label="Latest diagnosis", prompt="Summarize the findings of the latest diagnosis"),
        QuickAction(label="Evolution", prompt="How has my business evolved since the first diagnosis?"),
    ],
}


def page_name(page_id: Optional[str]) -> str:
    return PAGE_NAMES.get(page_id or "/", DEFAULT_PAGE_NAME)


def greeting_for(page_id: Optional[str], project_name: Optional[str] = None) -> str:
    text = f"Hi! You are on the **{page_name(page_id)}** page"
    if project_name:
        text += f" of project **{project_name}**"
    return text + ". How can I help you?"


def quick_actions_for(page_id: Optional[str], project_name: Optional[str] = None) -> QuickActionsResponse:
    pid = page_id or "/"
    return QuickActionsResponse(
        page_id=pid,
        page_name=page_name(pid),
        greeting=greeting_for(pid, project_name),
        actions=[a.model_copy() for a in QUICK_ACTIONS.get(pid, [])],
    )
