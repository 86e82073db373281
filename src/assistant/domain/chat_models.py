from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]

MAX_MESSAGE_CHARS = 10000
MAX_MESSAGES = 100


class Utterance(BaseModel):
    role: Role
    content: str = Field(max_length=MAX_MESSAGE_CHARS)


class ProjectRef(BaseModel):
    id: str
    name: str


class FocusRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kpi_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("kpiId", "kpi_id"))
    kpi_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("kpiName", "kpi_name"))
    task_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("taskId", "task_id"))
    document_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("documentId", "document_id"))

    def is_empty(self) -> bool:
        return not (self.kpi_id or self.kpi_name or self.task_id or self.document_id)


class PageContext(BaseModel):
    """Per-request description of where the user is and what they are looking at."""

    model_config = ConfigDict(populate_by_name=True)

    page_id: str = Field(default="/", validation_alias=AliasChoices("pageId", "currentPage", "page", "page_id"))
    project: Optional[ProjectRef] = None
    focus: Optional[FocusRef] = None
    data_snapshot: Optional[Any] = Field(
        default=None,
        validation_alias=AliasChoices("dataSnapshot", "data", "data_snapshot"),
    )


class CompanyInfo(BaseModel):
    name: Optional[str] = None
    industry: Optional[str] = None
    stage: Optional[str] = None


class AssistantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[Utterance] = Field(min_length=1, max_length=MAX_MESSAGES)
    context: Optional[PageContext] = None
    mode: str = "contextual"
    company_info: Optional[CompanyInfo] = Field(
        default=None,
        validation_alias=AliasChoices("companyInfo", "company_info"),
    )

    def latest_user_utterance(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""


class QuickAction(BaseModel):
    label: str
    prompt: str


class QuickActionsResponse(BaseModel):
    page_id: str
    page_name: str
    greeting: str
    actions: List[QuickAction] = []


class PromptConfig(BaseModel):
    key: str
    prompt: str
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None


class PromptConfigUpdate(BaseModel):
    prompt: str = Field(min_length=1, max_length=20000)
