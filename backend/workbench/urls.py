from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import workbench_api
from .views import RunViewSet

router = DefaultRouter()
router.register("runs", RunViewSet, basename="run")

urlpatterns = [
    path("artifacts", workbench_api.artifacts_collection, name="artifacts-collection"),
    path("artifacts/<str:artifact_id>", workbench_api.artifact_detail, name="artifact-detail"),
    path("artifacts/<str:artifact_id>/versions", workbench_api.artifact_versions, name="artifact-versions"),
    path("versions/<str:version_id>", workbench_api.version_detail, name="version-detail"),
    path("versions/<str:version_id>/rerun", workbench_api.version_rerun, name="version-rerun"),
    path("chat", workbench_api.chat, name="chat"),
    path(
        "conversations/<str:conversation_id>/style",
        workbench_api.conversation_style,
        name="conversation-style",
    ),
    path("styles", workbench_api.styles_collection, name="styles-collection"),
    path("kb/sources", workbench_api.kb_sources, name="kb-sources"),
    path("kb/ingest", workbench_api.kb_ingest, name="kb-ingest"),
    path("search", workbench_api.search, name="search"),
    path("playbooks", workbench_api.playbooks_collection, name="playbooks-collection"),
    path("", include(router.urls)),
]
