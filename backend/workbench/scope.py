import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.http import HttpRequest

from .models import Org, Project


class WorkbenchError(RuntimeError):
    status_code = 400


class NotFoundError(WorkbenchError):
    status_code = 404


def as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


@dataclass(frozen=True)
class Scope:
    org: Org
    project: Project

    @property
    def org_id(self) -> str:
        return str(self.org.id)

    @property
    def project_id(self) -> str:
        return str(self.project.id)


def _pick(payload: Dict[str, Any], request: Optional[HttpRequest], key: str, header: str, default: str) -> str:
    value = str(payload.get(key) or "").strip()
    if not value and request is not None:
        value = str(request.headers.get(header) or "").strip()
    return value or default


def resolve_org(org_id: str) -> Org:
    org = Org.objects.filter(id=org_id).first()
    if not org:
        raise NotFoundError(f"org '{org_id}' not found")
    return org


def resolve_scope(payload: Dict[str, Any], request: Optional[HttpRequest] = None) -> Scope:
    """Resolve the org/project a request acts in.

    Explicit payload keys win over the ``X-Workbench-Org``/``X-Workbench-Project``
    headers, which win over the configured defaults.
    """
    project_id = _pick(payload, request, "project_id", "X-Workbench-Project", settings.WORKBENCH_DEFAULT_PROJECT_ID)
    project = Project.objects.select_related("org").filter(id=project_id).first()
    if not project:
        raise NotFoundError(f"project '{project_id}' not found")
    org_id = _pick(payload, request, "org_id", "X-Workbench-Org", str(project.org_id))
    if org_id != str(project.org_id):
        raise WorkbenchError(f"project '{project_id}' does not belong to org '{org_id}'")
    return Scope(org=project.org, project=project)


def resolve_org_scope(payload: Dict[str, Any], request: Optional[HttpRequest] = None) -> Org:
    org_id = _pick(payload, request, "org_id", "X-Workbench-Org", settings.WORKBENCH_DEFAULT_ORG_ID)
    return resolve_org(org_id)
