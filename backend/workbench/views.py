from rest_framework import viewsets
from rest_framework.permissions import AllowAny

from .models import Run
from .serializers import RunSerializer
from .scope import as_uuid


class RunViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = RunSerializer
    permission_classes = [AllowAny]

    def get_queryset(self):
        qs = Run.objects.all().order_by("-created_at")
        version_param = self.request.query_params.get("version")
        if version_param:
            version_id = as_uuid(version_param)
            if version_id is None:
                return qs.none()
            qs = qs.filter(version_id=version_id)
        status_param = self.request.query_params.get("status")
        if status_param:
            qs = qs.filter(status=status_param)
        return qs
