import logging
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .diffing import make_diff
from .models import Artifact, ArtifactVersion, Run
from .router import RouterConfigError, RouterError, router_chat
from .scope import NotFoundError, Scope, WorkbenchError, as_uuid
from .summarize import auto_summarize

logger = logging.getLogger(__name__)

RERUN_FALLBACK_PROMPT = "Re-run context missing"
DEFAULT_RUN_PROVIDER = "openrouter"


class VersionPreconditionError(WorkbenchError):
    status_code = 400


class LatestVersionConflict(WorkbenchError):
    status_code = 409


class UpstreamResponseError(WorkbenchError):
    status_code = 502


def get_artifact(artifact_id: Any) -> Artifact:
    key = as_uuid(artifact_id)
    artifact = Artifact.objects.select_related("latest_version", "project").filter(id=key).first() if key else None
    if not artifact:
        raise NotFoundError("artifact not found")
    return artifact


def get_version(version_id: Any) -> ArtifactVersion:
    key = as_uuid(version_id)
    version = ArtifactVersion.objects.select_related("artifact").filter(id=key).first() if key else None
    if not version:
        raise NotFoundError("version not found")
    return version


def list_versions(artifact: Artifact, branch: Optional[str] = None):
    qs = artifact.versions.all().order_by("-created_at")
    if branch:
        qs = qs.filter(branch=branch)
    return qs


def version_lineage(version: ArtifactVersion) -> List[ArtifactVersion]:
    """Parent chain from ``version`` back to its root, newest first."""
    chain: List[ArtifactVersion] = []
    seen = set()
    current: Optional[ArtifactVersion] = version
    while current is not None and current.id not in seen:
        chain.append(current)
        seen.add(current.id)
        current = current.parent
    return chain


def _repoint_latest(
    artifact: Artifact, version: ArtifactVersion, expected_latest_version_id: Optional[Any] = None
) -> None:
    qs = Artifact.objects.filter(id=artifact.id)
    if expected_latest_version_id is not None:
        expected = as_uuid(expected_latest_version_id)
        if expected is None:
            raise LatestVersionConflict("expected_latest_version_id is not a valid version id")
        qs = qs.filter(latest_version_id=expected)
    updated = qs.update(latest_version=version, updated_at=timezone.now())
    if not updated:
        raise LatestVersionConflict("artifact latest version changed; reload and retry")
    artifact.latest_version = version


def create_artifact(
    *,
    scope: Scope,
    type: str,
    name: str,
    content_text: Optional[str] = None,
    blob_url: str = "",
    summary: str = "",
) -> Dict[str, Any]:
    with transaction.atomic():
        artifact = Artifact.objects.create(project=scope.project, type=type or "markdown", name=name)
        version = ArtifactVersion.objects.create(
            artifact=artifact,
            content_text=content_text,
            blob_url=blob_url or "",
            summary=summary or "",
        )
        _repoint_latest(artifact, version)
    logger.info(
        "artifact_created",
        extra={"artifact_id": str(artifact.id), "version_id": str(version.id), "project_id": scope.project_id},
    )
    return {"artifact": artifact, "version": version}


def create_version(
    *,
    artifact_id: Any,
    parent_version_id: Optional[Any] = None,
    branch: str = "main",
    content_text: Optional[str] = None,
    blob_url: str = "",
    summary: str = "",
    model_name: str = "",
    provider: str = "",
    params_json: Optional[Dict[str, Any]] = None,
    expected_latest_version_id: Optional[Any] = None,
) -> ArtifactVersion:
    artifact = get_artifact(artifact_id)
    parent: Optional[ArtifactVersion] = None
    diff_json = None
    if parent_version_id:
        key = as_uuid(parent_version_id)
        parent = ArtifactVersion.objects.filter(id=key).first() if key else None
        if parent is None:
            logger.warning(
                "parent_version_missing",
                extra={"artifact_id": str(artifact.id), "parent_version_id": str(parent_version_id)},
            )
        elif parent.artifact_id != artifact.id:
            raise VersionPreconditionError("parent version belongs to a different artifact")
        else:
            diff_json = make_diff(parent.content_text or "", content_text or "")

    auto_summary = ""
    if settings.WORKBENCH_AUTO_SUMMARY_ENABLED:
        auto_summary = auto_summarize(
            previous=(parent.content_text if parent else "") or "",
            next_text=content_text or "",
            notes=summary or "",
        )

    with transaction.atomic():
        version = ArtifactVersion.objects.create(
            artifact=artifact,
            parent=parent,
            branch=branch or "main",
            content_text=content_text,
            blob_url=blob_url or "",
            summary=summary or "",
            auto_summary=auto_summary,
            diff_json=diff_json,
            model_name=model_name or "",
            provider=provider or "",
            params_json=params_json,
        )
        _repoint_latest(artifact, version, expected_latest_version_id)
    logger.info(
        "artifact_version_created",
        extra={
            "artifact_id": str(artifact.id),
            "version_id": str(version.id),
            "parent_id": str(parent.id) if parent else None,
            "branch": version.branch,
        },
    )
    return version


def _fail_run(run: Run, message: str) -> None:
    run.status = "failed"
    run.error_message = message
    run.finished_at = timezone.now()
    run.save(update_fields=["status", "error_message", "finished_at"])


def rerun_version(version_id: Any) -> Run:
    version = get_version(version_id)
    if not version.model_name:
        raise VersionPreconditionError("no model pinned")
    params = version.params_json if isinstance(version.params_json, dict) else None
    run = Run.objects.create(
        project_id=version.artifact.project_id,
        version=version,
        model_name=version.model_name,
        provider=version.provider or DEFAULT_RUN_PROVIDER,
        input_json=version.params_json or {},
    )
    try:
        response = router_chat(
            model=version.model_name,
            messages=[{"role": "user", "content": version.content_text or RERUN_FALLBACK_PROMPT}],
            params=params,
        )
    except (RouterError, RouterConfigError, requests.RequestException) as exc:
        _fail_run(run, str(exc))
        logger.exception("version_rerun_failed", extra={"run_id": str(run.id), "version_id": str(version.id)})
        raise
    try:
        output = response.json()
    except ValueError as exc:
        _fail_run(run, "OpenRouter returned a non-JSON body")
        logger.warning("version_rerun_bad_body", extra={"run_id": str(run.id), "version_id": str(version.id)})
        raise UpstreamResponseError("OpenRouter returned a non-JSON body") from exc
    run.output_json = output
    run.status = "done"
    run.finished_at = timezone.now()
    run.save(update_fields=["output_json", "status", "finished_at"])
    logger.info("version_rerun_done", extra={"run_id": str(run.id), "version_id": str(version.id)})
    return run
