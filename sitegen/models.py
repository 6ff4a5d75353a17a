from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

AppType = Literal["dashboard", "crud", "ecommerce", "social", "productivity", "custom"]
Role = Literal["user", "assistant"]

# Conversation turns forwarded to the model on each refinement
MAX_HISTORY_MESSAGES = 10


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Palette(_Frozen):
    primary: str = Field(..., description="Primary color, HSL string such as '220 70% 50%'")
    background: str
    accent: str


DEFAULT_PALETTE = Palette(primary="220 70% 50%", background="0 0% 100%", accent="262 80% 50%")


class AppMeta(_Frozen):
    name: str
    description: str
    features: List[str] = Field(default_factory=list)


class ConversationMessage(_Frozen):
    role: Role
    content: str


class WebsiteRequest(_Frozen):
    prompt: str = Field(..., description="What the landing page should be about")


class AppRequest(_Frozen):
    prompt: str
    app_type: Optional[AppType] = Field(default=None, alias="appType")


class RefineRequest(_Frozen):
    current_code: str = Field(..., alias="currentCode")
    feedback: str
    conversation_history: List[ConversationMessage] = Field(default_factory=list, alias="conversationHistory")

    def recent_history(self, limit: int = MAX_HISTORY_MESSAGES) -> List[ConversationMessage]:
        if limit <= 0:
            return []
        return list(self.conversation_history[-limit:])


class SummarizeRequest(_Frozen):
    website_content: str = Field(..., alias="websiteContent")


GenerationRequest = Union[WebsiteRequest, AppRequest, RefineRequest]


class WebsiteResult(_Frozen):
    website_content: str = Field(..., alias="websiteContent")
    palette: Palette


class AppResult(_Frozen):
    app_content: str = Field(..., alias="appContent")
    palette: Palette
    app_meta: AppMeta = Field(..., alias="appMeta")


class RefineResult(_Frozen):
    refined_code: str = Field(..., alias="refinedCode")
    changes_summary: str = Field(..., alias="changesSummary")
    suggestions: List[str] = Field(default_factory=list)


class SummaryResult(_Frozen):
    summary: str


GenerationResult = Union[WebsiteResult, AppResult, RefineResult]


@dataclass(frozen=True)
class ProviderCandidate:
    provider_id: str
    model_name: str
    max_tokens: int
    temperature: float = 0.7
    top_p: float = 0.9

    @property
    def label(self) -> str:
        return f"{self.provider_id}:{self.model_name}"


# Template CRUD backend records. Only metadata lives remotely; the HTML
# `code` is merged in from the local code store.

class TemplateBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    namespace: str
    email_designer: str = Field(..., alias="emailDesigner")
    email: str
    hidden: bool = False


class TemplateCreate(TemplateBase):
    # Derived from `name` when omitted
    namespace: Optional[str] = Field(default=None, max_length=100)
    code: Optional[str] = None


class TemplateUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    namespace: Optional[str] = Field(default=None, max_length=100)
    email_designer: Optional[str] = Field(default=None, alias="emailDesigner")
    email: Optional[str] = None
    hidden: Optional[bool] = None
    code: Optional[str] = None


class Template(TemplateBase):
    id: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    code: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str
