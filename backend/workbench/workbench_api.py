import json
import logging
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Iterator, List

import requests
from django.http import HttpRequest, HttpResponse, JsonResponse, StreamingHttpResponse
from django.views.decorators.csrf import csrf_exempt
from jsonschema import Draft202012Validator

from .knowledge import create_playbook, ingest_source, register_source, search_chunks, search_playbooks
from .models import Artifact, KbSource, StylePreset
from .router import RouterConfigError, RouterError, default_chat_model, router_chat
from .scope import WorkbenchError, resolve_org_scope, resolve_scope
from .serializers import (
    ArtifactSerializer,
    ArtifactVersionSerializer,
    ArtifactVersionSummarySerializer,
    ConversationSerializer,
    KbSourceSerializer,
    PlaybookSerializer,
    StylePresetSerializer,
)
from .styles import assign_conversation_style, merge_style, resolve_style_preset
from .versions import (
    create_artifact,
    create_version,
    get_artifact,
    get_version,
    list_versions,
    rerun_version,
    version_lineage,
)

logger = logging.getLogger(__name__)


def _parse_json(request: HttpRequest) -> Dict[str, Any]:
    if request.body:
        try:
            payload = json.loads(request.body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return payload if isinstance(payload, dict) else {}
    return {}


def _load_schema_local(name: str) -> Dict[str, Any]:
    base_dir = Path(__file__).resolve().parents[1]
    path = base_dir / "schemas" / name
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _validate_schema_payload(payload: Dict[str, Any], schema_name: str) -> List[str]:
    schema = _load_schema_local(schema_name)
    validator = Draft202012Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(payload), key=lambda e: list(e.path)):
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        errors.append(f"{path}: {error.message}")
    return errors


def _invalid_payload(errors: List[str]) -> JsonResponse:
    return JsonResponse({"error": "invalid payload", "details": errors}, status=400)


def _method_not_allowed() -> JsonResponse:
    return JsonResponse({"error": "method not allowed"}, status=405)


def handle_service_errors(view):
    @wraps(view)
    def _wrapped(request: HttpRequest, *args, **kwargs) -> HttpResponse:
        try:
            return view(request, *args, **kwargs)
        except WorkbenchError as exc:
            return JsonResponse({"error": str(exc)}, status=exc.status_code)
        except RouterConfigError as exc:
            logger.error("router_not_configured", extra={"path": request.path})
            return JsonResponse({"error": str(exc)}, status=exc.status_code)
        except RouterError as exc:
            return JsonResponse({"error": str(exc)}, status=502)
        except requests.RequestException as exc:
            return JsonResponse({"error": f"upstream request failed: {exc}"}, status=502)

    return _wrapped


@csrf_exempt
@handle_service_errors
def artifacts_collection(request: HttpRequest) -> JsonResponse:
    if request.method == "POST":
        payload = _parse_json(request)
        if errors := _validate_schema_payload(payload, "artifact_create.v1.schema.json"):
            return _invalid_payload(errors)
        scope = resolve_scope(payload, request)
        created = create_artifact(
            scope=scope,
            type=payload.get("type") or "markdown",
            name=payload["name"].strip(),
            content_text=payload.get("content_text"),
            blob_url=payload.get("blob_url") or "",
            summary=payload.get("summary") or "",
        )
        return JsonResponse(
            {
                "artifact": ArtifactSerializer(created["artifact"]).data,
                "version": ArtifactVersionSerializer(created["version"]).data,
            },
            status=201,
        )
    if request.method != "GET":
        return _method_not_allowed()
    scope = resolve_scope(request.GET.dict(), request)
    qs = Artifact.objects.filter(project=scope.project).order_by("-updated_at")
    if artifact_type := request.GET.get("type"):
        qs = qs.filter(type=artifact_type)
    return JsonResponse({"artifacts": ArtifactSerializer(qs, many=True).data})


@csrf_exempt
@handle_service_errors
def artifact_detail(request: HttpRequest, artifact_id: str) -> JsonResponse:
    if request.method != "GET":
        return _method_not_allowed()
    artifact = get_artifact(artifact_id)
    latest = ArtifactVersionSerializer(artifact.latest_version).data if artifact.latest_version_id else None
    return JsonResponse({"artifact": ArtifactSerializer(artifact).data, "latest_version": latest})


@csrf_exempt
@handle_service_errors
def artifact_versions(request: HttpRequest, artifact_id: str) -> JsonResponse:
    if request.method == "POST":
        payload = _parse_json(request)
        if errors := _validate_schema_payload(payload, "version_create.v1.schema.json"):
            return _invalid_payload(errors)
        version = create_version(
            artifact_id=artifact_id,
            parent_version_id=payload.get("parent_version_id"),
            branch=payload.get("branch") or "main",
            content_text=payload.get("content_text"),
            blob_url=payload.get("blob_url") or "",
            summary=payload.get("summary") or "",
            model_name=payload.get("model_name") or "",
            provider=payload.get("provider") or "",
            params_json=payload.get("params_json"),
            expected_latest_version_id=payload.get("expected_latest_version_id"),
        )
        return JsonResponse({"version": ArtifactVersionSerializer(version).data}, status=201)
    if request.method != "GET":
        return _method_not_allowed()
    artifact = get_artifact(artifact_id)
    versions = list_versions(artifact, branch=request.GET.get("branch"))
    return JsonResponse(
        {
            "artifact_id": str(artifact.id),
            "latest_version_id": str(artifact.latest_version_id) if artifact.latest_version_id else None,
            "versions": ArtifactVersionSummarySerializer(versions, many=True).data,
        }
    )


@csrf_exempt
@handle_service_errors
def version_detail(request: HttpRequest, version_id: str) -> JsonResponse:
    if request.method != "GET":
        return _method_not_allowed()
    version = get_version(version_id)
    return JsonResponse(
        {
            "version": ArtifactVersionSerializer(version).data,
            "lineage": [str(node.id) for node in version_lineage(version)],
        }
    )


@csrf_exempt
@handle_service_errors
def version_rerun(request: HttpRequest, version_id: str) -> JsonResponse:
    if request.method != "POST":
        return _method_not_allowed()
    run = rerun_version(version_id)
    return JsonResponse({"run_id": str(run.id), "output": run.output_json})


def _relay_stream(response: requests.Response) -> Iterator[bytes]:
    try:
        for chunk in response.iter_content(chunk_size=None):
            if chunk:
                yield chunk
    finally:
        response.close()


@csrf_exempt
@handle_service_errors
def chat(request: HttpRequest) -> HttpResponse:
    if request.method != "POST":
        return _method_not_allowed()
    payload = _parse_json(request)
    if errors := _validate_schema_payload(payload, "chat_request.v1.schema.json"):
        return _invalid_payload(errors)
    preset = resolve_style_preset(
        style_override_slug=payload.get("style_override_slug"),
        conversation_id=payload.get("conversation_id"),
    )
    messages, params = merge_style(preset, payload.get("messages") or [], payload.get("params"))
    upstream = router_chat(
        model=payload.get("model") or default_chat_model(),
        messages=messages,
        params=params,
        stream=True,
    )
    response = StreamingHttpResponse(_relay_stream(upstream), content_type="text/event-stream")
    response["Cache-Control"] = "no-cache"
    return response


@csrf_exempt
@handle_service_errors
def conversation_style(request: HttpRequest, conversation_id: str) -> JsonResponse:
    if request.method != "POST":
        return _method_not_allowed()
    payload = _parse_json(request)
    style_slug = str(payload.get("style_slug") or "").strip()
    if not style_slug:
        return JsonResponse({"error": "style_slug is required"}, status=400)
    scope = resolve_scope(payload, request)
    conversation = assign_conversation_style(conversation_id=conversation_id, style_slug=style_slug, scope=scope)
    return JsonResponse({"ok": True, "conversation": ConversationSerializer(conversation).data})


@csrf_exempt
@handle_service_errors
def styles_collection(request: HttpRequest) -> JsonResponse:
    if request.method != "GET":
        return _method_not_allowed()
    presets = StylePreset.objects.all().order_by("name")
    return JsonResponse({"items": StylePresetSerializer(presets, many=True).data})


@csrf_exempt
@handle_service_errors
def kb_sources(request: HttpRequest) -> JsonResponse:
    if request.method == "POST":
        payload = _parse_json(request)
        url = str(payload.get("url") or "").strip()
        if not url:
            return JsonResponse({"error": "url is required"}, status=400)
        org = resolve_org_scope(payload, request)
        source = register_source(org=org, url=url)
        return JsonResponse({"source": KbSourceSerializer(source).data}, status=201)
    if request.method != "GET":
        return _method_not_allowed()
    org = resolve_org_scope(request.GET.dict(), request)
    sources = KbSource.objects.filter(org=org).order_by("-created_at")
    return JsonResponse({"sources": KbSourceSerializer(sources, many=True).data})


@csrf_exempt
@handle_service_errors
def kb_ingest(request: HttpRequest) -> JsonResponse:
    if request.method != "POST":
        return _method_not_allowed()
    payload = _parse_json(request)
    source_id = payload.get("source_id")
    if not source_id:
        return JsonResponse({"error": "source_id is required"}, status=400)
    count = ingest_source(source_id)
    return JsonResponse({"ok": True, "chunks": count})


@csrf_exempt
@handle_service_errors
def search(request: HttpRequest) -> JsonResponse:
    if request.method != "POST":
        return _method_not_allowed()
    payload = _parse_json(request)
    org = resolve_org_scope(payload, request)
    rows = search_chunks(org=org, query=str(payload.get("query") or ""))
    return JsonResponse({"context": rows})


@csrf_exempt
@handle_service_errors
def playbooks_collection(request: HttpRequest) -> JsonResponse:
    if request.method == "POST":
        payload = _parse_json(request)
        if errors := _validate_schema_payload(payload, "playbook_create.v1.schema.json"):
            return _invalid_payload(errors)
        org = resolve_org_scope(payload, request)
        playbook = create_playbook(
            org=org,
            title=payload["title"].strip(),
            tags=payload.get("tags") or [],
            body_md=payload.get("body_md") or "",
        )
        return JsonResponse({"playbook": PlaybookSerializer(playbook).data}, status=201)
    if request.method != "GET":
        return _method_not_allowed()
    org = resolve_org_scope(request.GET.dict(), request)
    results = search_playbooks(query=request.GET.get("q", ""), org=org)
    return JsonResponse({"results": PlaybookSerializer(results, many=True).data})
