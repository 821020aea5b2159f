from django.contrib import admin

from .models import (
    Artifact,
    ArtifactVersion,
    Conversation,
    KbChunk,
    KbSource,
    Org,
    Playbook,
    Project,
    Run,
    StylePreset,
)


class ArtifactVersionInline(admin.TabularInline):
    model = ArtifactVersion
    fk_name = "artifact"
    extra = 0
    can_delete = False
    fields = ("id", "branch", "parent", "model_name", "created_at")
    readonly_fields = ("id", "branch", "parent", "model_name", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Org)
class OrgAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_at")
    search_fields = ("id", "name")


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "org", "created_at")
    list_filter = ("org",)
    search_fields = ("id", "name")


@admin.register(Artifact)
class ArtifactAdmin(admin.ModelAdmin):
    list_display = ("name", "type", "project", "latest_version", "updated_at")
    list_filter = ("type", "project")
    search_fields = ("name",)
    readonly_fields = ("latest_version",)
    inlines = [ArtifactVersionInline]


@admin.register(ArtifactVersion)
class ArtifactVersionAdmin(admin.ModelAdmin):
    list_display = ("id", "artifact", "branch", "model_name", "created_at")
    list_filter = ("branch",)
    search_fields = ("summary", "auto_summary")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Run)
class RunAdmin(admin.ModelAdmin):
    list_display = ("id", "version", "model_name", "status", "created_at", "finished_at")
    list_filter = ("status", "provider")


@admin.register(StylePreset)
class StylePresetAdmin(admin.ModelAdmin):
    list_display = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ("id", "project", "style_preset", "updated_at")


@admin.register(KbSource)
class KbSourceAdmin(admin.ModelAdmin):
    list_display = ("url", "org", "status", "ingested_at")
    list_filter = ("status",)


@admin.register(KbChunk)
class KbChunkAdmin(admin.ModelAdmin):
    list_display = ("source", "position", "url")


@admin.register(Playbook)
class PlaybookAdmin(admin.ModelAdmin):
    list_display = ("title", "org", "created_at")
    search_fields = ("title", "tags_text", "body_md")
