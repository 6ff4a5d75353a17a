import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sitegen.auth import authenticate_mock_user, basic_auth_header, parse_basic_auth
from sitegen.code_store import build_code_store
from sitegen.config import get_settings
from sitegen.errors import GenerationError, InvalidRequest, SitegenError, TemplateApiError
from sitegen.generation import GenerationFacade
from sitegen.models import (
    AppRequest,
    LoginRequest,
    RefineRequest,
    SummarizeRequest,
    Template,
    TemplateCreate,
    TemplateUpdate,
    WebsiteRequest,
)
from sitegen.ratelimit import FixedWindowLimiter
from sitegen.templates_client import TemplateApiClient, to_short_namespace

settings = get_settings()

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

log = logging.getLogger(__name__)

facade = GenerationFacade(settings)
limiter = FixedWindowLimiter(settings.rate_window_seconds, settings.rate_max_requests)
code_store = build_code_store(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    status = facade.status()
    log.info(
        "startup: primary configured=%s fallback configured=%s enabled=%s",
        status["primary"]["configured"],
        status["fallback"]["configured"],
        status["fallback"]["enabled"],
    )
    if not status["primary"]["configured"] and not status["fallback"]["configured"]:
        log.warning("startup: no LLM credentials set; generation endpoints will fail")
    yield


app = FastAPI(title="sitegen", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = str(uuid.uuid4())
    start = time.time()
    request.state.request_id = rid
    response = None
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        dur_ms = int((time.time() - start) * 1000)
        log.info(
            "rid=%s method=%s path=%s status=%s dur_ms=%d",
            rid, request.method, request.url.path, getattr(response, "status_code", "?"), dur_ms,
        )


# ----- error mapping -----

@app.exception_handler(InvalidRequest)
async def _invalid_request(request: Request, exc: InvalidRequest):
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(TemplateApiError)
async def _template_api_error(request: Request, exc: TemplateApiError):
    return JSONResponse(status_code=exc.status, content={"error": exc.message})


@app.exception_handler(SitegenError)
async def _sitegen_error(request: Request, exc: SitegenError):
    if isinstance(exc, GenerationError):
        log.error("generation failed rid=%s: %s", getattr(request.state, "request_id", None), exc.message)
    else:
        log.warning("request failed rid=%s: %s", getattr(request.state, "request_id", None), exc.message)
    return JSONResponse(status_code=502, content={"error": exc.message})


# ----- rate limiting -----

def _client_key(request: Request) -> str:
    creds = parse_basic_auth(request.headers.get("authorization"))
    if creds:
        return f"user:{creds[0]}"
    return request.client.host if request.client else "anon"


def _rate_limit_headers(remaining: int, reset_ts: int, *, limited: bool = False) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_ts),
    }
    if limited:
        headers["Retry-After"] = str(limiter.retry_after(reset_ts))
    return headers


def _rate_limit_payload(reset_ts: int) -> Dict[str, Any]:
    wait_seconds = limiter.retry_after(reset_ts)
    return {
        "error": f"Rate limit exceeded. Try again in {wait_seconds} seconds.",
        "reset": reset_ts,
        "retry_after_seconds": wait_seconds,
    }


def _generate(request: Request, bucket: str, produce) -> JSONResponse:
    allowed, remaining, reset_ts = limiter.allow_request(bucket, _client_key(request))
    if not allowed:
        log.info("rate_limit denied bucket=%s", bucket)
        return JSONResponse(
            status_code=429,
            content=_rate_limit_payload(reset_ts),
            headers=_rate_limit_headers(remaining, reset_ts, limited=True),
        )
    result = produce()
    return JSONResponse(result.model_dump(by_alias=True), headers=_rate_limit_headers(remaining, reset_ts))


# ----- routes -----

@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/llm/status")
def llm_status():
    return facade.status()


@app.post("/generate/website")
def generate_website(req: WebsiteRequest, request: Request):
    return _generate(request, "gen", lambda: facade.generate_website(req))


@app.post("/generate/app")
def generate_app(req: AppRequest, request: Request):
    return _generate(request, "gen", lambda: facade.generate_app(req))


@app.post("/refine")
def refine(req: RefineRequest, request: Request):
    return _generate(request, "refine", lambda: facade.refine_template(req))


@app.post("/summarize")
def summarize(req: SummarizeRequest, request: Request):
    return _generate(request, "summarize", lambda: facade.summarize_website(req))


@app.post("/auth/login")
def login(req: LoginRequest):
    header = basic_auth_header(req.email, req.password)
    if settings.mock_users_enabled:
        user = authenticate_mock_user(req.email, req.password)
        if user is None:
            return JSONResponse(status_code=401, content={"error": "Invalid credentials"})
        log.info("auth: mock login role=%s", user.role)
        return {
            "user": {"name": user.name, "email": user.email, "role": user.role},
            "authorization": header,
        }
    if TemplateApiClient.from_settings(settings, header).check_credentials():
        return {
            "user": {"name": req.email, "email": req.email, "role": "user"},
            "authorization": header,
        }
    return JSONResponse(status_code=401, content={"error": "Invalid credentials"})


def _templates_client(request: Request) -> TemplateApiClient:
    header = request.headers.get("authorization")
    if parse_basic_auth(header) is None:
        raise TemplateApiError("Authorization header required", status=401)
    return TemplateApiClient.from_settings(settings, header)


def _with_code(record: Dict[str, Any], code: Optional[str] = None) -> Dict[str, Any]:
    if code is None:
        code = code_store.get(record["id"]) if record.get("id") is not None else ""
    try:
        template = Template.model_validate({**record, "code": code})
    except ValidationError as exc:
        log.warning("templates: unexpected backend record: %s", exc)
        raise TemplateApiError("Template backend returned an unexpected record", status=502) from exc
    return template.model_dump(by_alias=True)


def _echo_request(fields: Dict[str, Any], code: str) -> Dict[str, Any]:
    # Backend accepted the write but sent no record back
    return {**fields, "code": code}


@app.get("/templates")
def list_templates(request: Request) -> List[Dict[str, Any]]:
    records = _templates_client(request).list_templates()
    return [_with_code(r) for r in records]


@app.post("/templates", status_code=201)
def create_template(req: TemplateCreate, request: Request):
    client = _templates_client(request)
    data = req.model_dump(by_alias=True, exclude={"code"})
    if not data.get("namespace"):
        data["namespace"] = to_short_namespace(req.name)
    created = client.create_template(data)
    if not created:
        log.warning("templates: create returned no record; code not stored")
        return _echo_request(data, req.code or "")
    if req.code and created.get("id") is not None:
        code_store.set(created["id"], req.code)
    return _with_code(created, req.code or "")


@app.put("/templates/{template_id}")
def update_template(template_id: int, req: TemplateUpdate, request: Request):
    client = _templates_client(request)
    data = req.model_dump(by_alias=True, exclude={"code"}, exclude_none=True)
    updated = client.update_template(template_id, data)
    if req.code:
        code_store.set(template_id, req.code)
    if not updated:
        return _echo_request({"id": template_id, **data}, code_store.get(template_id))
    return _with_code({"id": template_id, **updated})


@app.delete("/templates/{template_id}", status_code=204)
def delete_template(template_id: int, request: Request):
    _templates_client(request).delete_template(template_id)
    code_store.delete(template_id)
    return Response(status_code=204)


@app.get("/templates/{template_id}/code")
def template_code(template_id: int, request: Request):
    _templates_client(request)
    return {"id": template_id, "code": code_store.get(template_id)}
