import logging
import os
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_ROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_CHAT_MODEL = "openai/gpt-4.1-mini"
ROUTER_TITLE = "AI Workbench"

ROUTER_ENV_API_KEY = ["WORKBENCH_OPENROUTER_API_KEY", "OPENROUTER_API_KEY", "OPENROUTER_KEY"]


class RouterConfigError(RuntimeError):
    status_code = 500


class RouterError(RuntimeError):
    def __init__(self, status_code: int):
        super().__init__(f"OpenRouter {status_code}")
        self.status_code = status_code


def _router_url() -> str:
    return str(os.environ.get("WORKBENCH_ROUTER_URL") or DEFAULT_ROUTER_URL).strip()


def _app_url() -> str:
    return str(os.environ.get("APP_URL") or "http://localhost:3000").strip()


def _router_timeout() -> Optional[float]:
    raw = str(os.environ.get("WORKBENCH_ROUTER_TIMEOUT_SECONDS") or "60").strip()
    try:
        value = float(raw)
    except ValueError:
        value = 60.0
    return value if value > 0 else None


def _router_api_key() -> str:
    for key in ROUTER_ENV_API_KEY:
        value = str(os.environ.get(key) or "").strip()
        if value:
            return value
    return ""


def default_chat_model() -> str:
    return str(os.environ.get("WORKBENCH_DEFAULT_CHAT_MODEL") or DEFAULT_CHAT_MODEL).strip()


def router_chat(
    *,
    model: str,
    messages: List[Dict[str, str]],
    params: Optional[Dict[str, Any]] = None,
    stream: bool = False,
    extra_headers: Optional[Dict[str, str]] = None,
) -> requests.Response:
    api_key = _router_api_key()
    if not api_key:
        raise RouterConfigError(f"Missing router API key; set one of {', '.join(ROUTER_ENV_API_KEY)}")
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
        "HTTP-Referer": _app_url(),
        "X-Title": ROUTER_TITLE,
        **(extra_headers or {}),
    }
    body: Dict[str, Any] = {"stream": bool(stream), "model": model, "messages": messages}
    body.update(params or {})
    response = requests.post(
        _router_url(),
        headers=headers,
        json=body,
        stream=bool(stream),
        timeout=_router_timeout(),
    )
    if response.status_code >= 400:
        logger.warning("router_call_failed", extra={"model": model, "status_code": response.status_code})
        response.close()
        raise RouterError(response.status_code)
    return response
