import os
from typing import Any, Dict

from .router import DEFAULT_CHAT_MODEL, router_chat

SUMMARY_INPUT_LIMIT = 8000

SUMMARY_PROMPT = (
    "You write crisp changelogs.\n"
    "1) One-line summary\n"
    "2) 3-6 key changes\n"
    "3) Impact/Risks\n"
    "4) Reference user notes if useful.\n\n"
    "PREV:\n{previous}\n\n"
    "NEW:\n{next}\n\n"
    "NOTES:\n{notes}"
)


def summary_model() -> str:
    return str(os.environ.get("WORKBENCH_SUMMARY_MODEL") or DEFAULT_CHAT_MODEL).strip()


def build_summary_prompt(previous: str, next_text: str, notes: str) -> str:
    return SUMMARY_PROMPT.format(
        previous=(previous or "")[:SUMMARY_INPUT_LIMIT],
        next=(next_text or "")[:SUMMARY_INPUT_LIMIT],
        notes=notes or "",
    )


def extract_completion_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices") if isinstance(data.get("choices"), list) else []
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""


def auto_summarize(*, previous: str, next_text: str, notes: str) -> str:
    response = router_chat(
        model=summary_model(),
        messages=[{"role": "user", "content": build_summary_prompt(previous, next_text, notes)}],
    )
    try:
        data: Dict[str, Any] = response.json()
    except ValueError:
        return ""
    return extract_completion_text(data)
