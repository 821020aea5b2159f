import logging
from typing import Any, Dict, List, Optional, Tuple

from .models import Conversation, StylePreset
from .scope import NotFoundError, Scope

logger = logging.getLogger(__name__)

MAX_TOKENS_BY_HINT = {
    "short": 300,
    "medium": 800,
    "long": 1600,
}

DEFAULT_STYLE_PRESETS = [
    {
        "name": "Normal",
        "slug": "normal",
        "tone_sys": "Be helpful and natural. Match user formality. Keep answers compact unless asked.",
        "params_json": {"temperature": 0.5, "top_p": 0.9, "max_tokens_hint": "auto", "frequency_penalty": 0},
    },
    {
        "name": "Learning",
        "slug": "learning",
        "tone_sys": "Patient teacher. Explain step-by-step with simple examples.",
        "params_json": {"temperature": 0.4, "top_p": 0.9, "max_tokens_hint": "medium", "frequency_penalty": 0},
    },
    {
        "name": "Concise",
        "slug": "concise",
        "tone_sys": "Answer in 1-3 bullets or 2 short sentences. No filler.",
        "params_json": {"temperature": 0.3, "top_p": 0.85, "max_tokens_hint": "short", "frequency_penalty": 0.2},
    },
    {
        "name": "Explanatory",
        "slug": "explanatory",
        "tone_sys": "Educational tone. Define terms, then a clear, ordered explanation.",
        "params_json": {"temperature": 0.5, "top_p": 0.9, "max_tokens_hint": "long", "frequency_penalty": 0},
    },
    {
        "name": "Formal",
        "slug": "formal",
        "tone_sys": "Professional, structured, complete sentences. Include rationale.",
        "params_json": {"temperature": 0.35, "top_p": 0.9, "max_tokens_hint": "medium", "frequency_penalty": 0},
    },
]


def resolve_style_preset(
    *, style_override_slug: Optional[str] = None, conversation_id: Optional[str] = None
) -> Optional[StylePreset]:
    if style_override_slug:
        return StylePreset.objects.filter(slug=style_override_slug).first()
    if conversation_id:
        conversation = Conversation.objects.select_related("style_preset").filter(id=conversation_id).first()
        if conversation and conversation.style_preset_id:
            return conversation.style_preset
    return None


def max_tokens_for_hint(hint: Any) -> Optional[int]:
    return MAX_TOKENS_BY_HINT.get(str(hint or "").strip().lower())


def merge_style(
    preset: Optional[StylePreset],
    messages: List[Dict[str, Any]],
    params: Optional[Dict[str, Any]],
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    merged_params: Dict[str, Any] = {}
    merged_messages = list(messages or [])
    if preset is not None:
        preset_params = preset.params_json if isinstance(preset.params_json, dict) else {}
        max_tokens = max_tokens_for_hint(preset_params.get("max_tokens_hint"))
        if max_tokens is not None:
            merged_params["max_tokens"] = max_tokens
        tone = str(preset.tone_sys or "").strip()
        if tone:
            merged_messages = [{"role": "system", "content": tone}] + merged_messages
    merged_params.update(params or {})
    return merged_messages, merged_params


def assign_conversation_style(*, conversation_id: str, style_slug: str, scope: Scope) -> Conversation:
    preset = StylePreset.objects.filter(slug=style_slug).first()
    if not preset:
        raise NotFoundError("unknown style")
    conversation, created = Conversation.objects.get_or_create(
        id=conversation_id,
        defaults={"project": scope.project, "style_preset": preset},
    )
    if not created and conversation.style_preset_id != preset.id:
        conversation.style_preset = preset
        conversation.save(update_fields=["style_preset", "updated_at"])
    logger.info(
        "conversation_style_assigned",
        extra={"conversation_id": conversation_id, "style": style_slug, "conversation_created": created},
    )
    return conversation


def ensure_default_style_presets() -> List[StylePreset]:
    presets: List[StylePreset] = []
    for seed in DEFAULT_STYLE_PRESETS:
        preset, _ = StylePreset.objects.update_or_create(
            slug=seed["slug"],
            defaults={"name": seed["name"], "tone_sys": seed["tone_sys"], "params_json": dict(seed["params_json"])},
        )
        presets.append(preset)
    return presets
