import json

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from workbench.models import Org, Project, StylePreset
from workbench.serializers import StylePresetSerializer
from workbench.styles import ensure_default_style_presets


class Command(BaseCommand):
    help = "Seed the default org, project and style presets."

    def add_arguments(self, parser):
        parser.add_argument("--org", dest="org_id", help="Org id to create (defaults to WORKBENCH_DEFAULT_ORG_ID)")
        parser.add_argument(
            "--project", dest="project_id", help="Project id to create (defaults to WORKBENCH_DEFAULT_PROJECT_ID)"
        )
        parser.add_argument("--list", action="store_true", help="List style presets and exit")

    def handle(self, *args, **options):
        if options.get("list"):
            presets = StylePreset.objects.all().order_by("name")
            self.stdout.write(json.dumps({"items": StylePresetSerializer(presets, many=True).data}, indent=2, default=str))
            return

        org_id = (options.get("org_id") or settings.WORKBENCH_DEFAULT_ORG_ID).strip()
        project_id = (options.get("project_id") or settings.WORKBENCH_DEFAULT_PROJECT_ID).strip()
        if not org_id or not project_id:
            raise CommandError("org and project ids must not be blank")

        org, _ = Org.objects.get_or_create(id=org_id, defaults={"name": "Demo Org"})
        project, created = Project.objects.get_or_create(id=project_id, defaults={"org": org, "name": "Demo Project"})
        if not created and project.org_id != org.id:
            raise CommandError(f"project '{project_id}' already belongs to org '{project.org_id}'")
        presets = ensure_default_style_presets()
        result = {"org": org.id, "project": project.id, "style_presets": [preset.slug for preset in presets]}
        self.stdout.write(json.dumps(result, indent=2))
