from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

from sitegen.config import Settings
from sitegen.errors import (
    ExtractionFailed,
    FallbackExhausted,
    GenerationError,
    InvalidRequest,
    PayloadTooShort,
    ProviderError,
)
from sitegen.llm_parsing import PayloadShape, sanitize
from sitegen.llm_prompts import app_prompts, refine_prompts, summary_prompts, website_prompts
from sitegen.models import (
    DEFAULT_PALETTE,
    AppMeta,
    AppRequest,
    AppResult,
    RefineRequest,
    RefineResult,
    SummarizeRequest,
    SummaryResult,
    WebsiteRequest,
    WebsiteResult,
)
from sitegen.orchestrator import (
    APP_PROFILE,
    REFINE_PROFILE,
    WEBSITE_PROFILE,
    CompletionClient,
    FallbackOrchestrator,
    OperationProfile,
    PayloadPlan,
    describe_attempts,
)
from sitegen.providers import GeminiClient, HuggingFaceClient
from sitegen.repair import repair_html
from sitegen.schemas import (
    APP_SCHEMA,
    REFINE_SCHEMA,
    SUMMARY_SCHEMA,
    WEBSITE_SCHEMA,
    collect_errors,
    to_gemini_schema,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that mean "the primary provider is out", as opposed to a bad request
PRIMARY_FAILURE_MARKERS = (
    "Gemini",
    "googleai",
    "GoogleGenerativeAI",
    "429",
    "quota",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "FAILED_PRECONDITION",
    "generativelanguage.googleapis.com",
)

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)

_FEATURE_MARKERS = (
    (("localStorage",), "Data persistence"),
    (("dark",), "Dark mode"),
    (("search", "filter"), "Search/Filters"),
    (("modal", "dialog"), "Modals"),
    (("table", "grid"), "Data tables"),
    (("form",), "Forms"),
    (("toast", "notification"), "Notifications"),
    (("#/", "hash"), "SPA routing"),
    (("sidebar",), "Sidebar navigation"),
    (("chart", "Chart"), "Charts"),
)


class StructuredClient(Protocol):
    def generate_structured(self, system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]: ...


def is_primary_provider_failure(exc: BaseException) -> bool:
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if status == 429:
        return True
    message = str(exc)
    return any(marker in message for marker in PRIMARY_FAILURE_MARKERS)


def derive_app_name(html: str, prompt: str) -> str:
    m = _TITLE_RE.search(html or "")
    if m and m.group(1).strip():
        return m.group(1).strip()
    words = " ".join((prompt or "").split()[:3])
    return words or "Web App"


def detect_features(html: str) -> List[str]:
    features = [label for needles, label in _FEATURE_MARKERS if any(n in html for n in needles)]
    return features or ["Complete web app"]


def derive_app_meta(html: str, prompt: str) -> AppMeta:
    return AppMeta(
        name=derive_app_name(html, prompt),
        description=(prompt or "")[:100],
        features=detect_features(html or ""),
    )


def _require_text(value: Optional[str], what: str) -> str:
    if value is None or not value.strip():
        raise InvalidRequest(f"{what} must not be empty")
    return value


def _check_schema(data: Dict[str, Any], schema: Dict[str, Any], what: str) -> None:
    errors = collect_errors(data, schema)
    if errors:
        first = errors[0]
        raise ExtractionFailed(f"Invalid {what} payload: {first['path']}: {first['message']}")


class GenerationFacade:
    """Entry point for website/app generation and refinement.

    Each operation validates its input, asks the primary provider for a
    schema-shaped JSON answer and, when that fails with the primary-provider
    signature, runs the fallback chain over the secondary provider's models.
    Any other primary error propagates unchanged.
    """

    def __init__(
        self,
        settings: Settings,
        primary: Optional[StructuredClient] = None,
        fallback: Optional[CompletionClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.primary = primary if primary is not None else GeminiClient.from_settings(settings)
        self.fallback = fallback if fallback is not None else HuggingFaceClient.from_settings(settings)
        self.sleep = sleep
        self.clock = clock

    # ----- payload parsing for the fallback chain -----

    def _html_checked(self, html: str) -> str:
        if len(html) < self.settings.min_html_length:
            raise PayloadTooShort(
                f"HTML too short ({len(html)} chars, need {self.settings.min_html_length}). Model may have truncated."
            )
        return repair_html(html)

    def _parse_website(self, raw: str) -> WebsiteResult:
        data = sanitize(raw, PayloadShape.JSON, "websiteContent", tail={"palette": DEFAULT_PALETTE.model_dump()})
        _check_schema(data, WEBSITE_SCHEMA, "website")
        return WebsiteResult(
            websiteContent=self._html_checked(data["websiteContent"]),
            palette=data["palette"],
        )

    def _parse_app(self, prompt: str, raw: str) -> AppResult:
        html = sanitize(raw, PayloadShape.HTML, "appContent")
        if not isinstance(html, str):
            raise ExtractionFailed("No HTML document found in response")
        content = self._html_checked(html)
        return AppResult(
            appContent=content,
            palette=DEFAULT_PALETTE,
            appMeta=derive_app_meta(content, prompt),
        )

    def _parse_refine(self, raw: str) -> RefineResult:
        tail = {"changesSummary": "Changes applied (the response was cut short).", "suggestions": []}
        data = sanitize(raw, PayloadShape.JSON, "refinedCode", tail=tail)
        _check_schema(data, REFINE_SCHEMA, "refinement")
        return RefineResult(
            refinedCode=self._html_checked(data["refinedCode"]),
            changesSummary=data["changesSummary"],
            suggestions=[s for s in data.get("suggestions") or [] if isinstance(s, str)],
        )

    # ----- primary provider -----

    def _primary(self, system: str, user: str, schema: Dict[str, Any], what: str) -> Dict[str, Any]:
        data = self.primary.generate_structured(system, user, to_gemini_schema(schema))
        errors = collect_errors(data, schema)
        if errors:
            first = errors[0]
            raise ProviderError(f"Gemini returned an invalid {what} payload: {first['path']}: {first['message']}")
        return data

    def _with_fallback(
        self,
        primary_call: Callable[[], T],
        profile: OperationProfile,
        payload: PayloadPlan[T],
    ) -> T:
        try:
            return primary_call()
        except Exception as exc:
            if not self.settings.fallback_enabled or not is_primary_provider_failure(exc):
                raise
            primary_error = exc
        log.warning("generation: primary failed for %s, falling back: %s", profile.name, primary_error)
        orchestrator = FallbackOrchestrator(
            self.fallback,
            sleep=self.sleep,
            clock=self.clock,
            deadline_secs=self.settings.generation_deadline_secs,
        )
        try:
            result = orchestrator.run(profile, payload)
        except FallbackExhausted as fallback_error:
            log.error(
                "generation: fallback exhausted for %s attempts=%s",
                profile.name, describe_attempts(fallback_error.attempts),
            )
            raise GenerationError(
                f"Failed to {profile.name} with Gemini ({primary_error}). "
                f"Fallback to Hugging Face also failed: {fallback_error}",
                primary_error=primary_error,
                fallback_error=fallback_error,
            ) from fallback_error
        log.info("generation: %s served by fallback after %d attempts", profile.name, len(orchestrator.attempts))
        return result

    # ----- operations -----

    def generate_website(self, req: WebsiteRequest) -> WebsiteResult:
        prompt = _require_text(req.prompt, "Prompt")
        system, user = website_prompts(prompt)

        def primary() -> WebsiteResult:
            return WebsiteResult.model_validate(self._primary(system, user, WEBSITE_SCHEMA, "website"))

        return self._with_fallback(
            primary, WEBSITE_PROFILE, PayloadPlan(system, user, self._parse_website)
        )

    def generate_app(self, req: AppRequest) -> AppResult:
        prompt = _require_text(req.prompt, "Prompt")
        system, user = app_prompts(prompt, req.app_type)
        fb_system, fb_user = app_prompts(prompt, req.app_type, html_only=True)

        def primary() -> AppResult:
            return AppResult.model_validate(self._primary(system, user, APP_SCHEMA, "app"))

        return self._with_fallback(
            primary,
            APP_PROFILE,
            PayloadPlan(fb_system, fb_user, lambda raw: self._parse_app(prompt, raw)),
        )

    def refine_template(self, req: RefineRequest) -> RefineResult:
        current_code = _require_text(req.current_code, "Current code")
        feedback = _require_text(req.feedback, "Feedback")
        system, user = refine_prompts(current_code, feedback, req.recent_history())

        def primary() -> RefineResult:
            return RefineResult.model_validate(self._primary(system, user, REFINE_SCHEMA, "refinement"))

        return self._with_fallback(
            primary, REFINE_PROFILE, PayloadPlan(system, user, self._parse_refine)
        )

    def summarize_website(self, req: SummarizeRequest) -> SummaryResult:
        content = _require_text(req.website_content, "Website content")
        system, user = summary_prompts(content)
        return SummaryResult.model_validate(self._primary(system, user, SUMMARY_SCHEMA, "summary"))

    def status(self) -> Dict[str, Any]:
        return {
            "primary": {
                "provider": "gemini",
                "model": self.settings.gemini_model,
                "configured": bool(getattr(self.primary, "configured", True)),
            },
            "fallback": {
                "provider": "huggingface",
                "enabled": self.settings.fallback_enabled,
                "configured": bool(getattr(self.fallback, "configured", True)),
                "models": {
                    "website": [c.model_name for c in WEBSITE_PROFILE.candidates],
                    "app": [c.model_name for c in APP_PROFILE.candidates],
                    "refine": [c.model_name for c in REFINE_PROFILE.candidates],
                },
            },
            "min_html_length": self.settings.min_html_length,
        }
