from rest_framework import serializers

from .models import Artifact, ArtifactVersion, Conversation, KbSource, Playbook, Run, StylePreset


class ArtifactVersionSerializer(serializers.ModelSerializer):
    class Meta:
        model = ArtifactVersion
        fields = [
            "id",
            "artifact",
            "parent",
            "branch",
            "content_text",
            "blob_url",
            "summary",
            "auto_summary",
            "diff_json",
            "model_name",
            "provider",
            "params_json",
            "created_at",
        ]
        read_only_fields = fields


class ArtifactVersionSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = ArtifactVersion
        fields = ["id", "parent", "branch", "summary", "auto_summary", "model_name", "created_at"]


class ArtifactSerializer(serializers.ModelSerializer):
    version_count = serializers.SerializerMethodField()

    class Meta:
        model = Artifact
        fields = ["id", "project", "type", "name", "latest_version", "version_count", "created_at", "updated_at"]
        read_only_fields = fields

    def get_version_count(self, obj):
        return obj.versions.count()


class RunSerializer(serializers.ModelSerializer):
    class Meta:
        model = Run
        fields = [
            "id",
            "project",
            "version",
            "model_name",
            "provider",
            "input_json",
            "output_json",
            "status",
            "error_message",
            "created_at",
            "finished_at",
        ]
        read_only_fields = fields


class StylePresetSerializer(serializers.ModelSerializer):
    class Meta:
        model = StylePreset
        fields = ["id", "name", "slug", "tone_sys", "params_json"]


class ConversationSerializer(serializers.ModelSerializer):
    style_slug = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = ["id", "project", "style_preset", "style_slug", "created_at", "updated_at"]

    def get_style_slug(self, obj):
        return obj.style_preset.slug if obj.style_preset_id else None


class KbSourceSerializer(serializers.ModelSerializer):
    class Meta:
        model = KbSource
        fields = ["id", "org", "url", "status", "ingested_at", "created_at"]


class PlaybookSerializer(serializers.ModelSerializer):
    class Meta:
        model = Playbook
        fields = ["id", "org", "title", "tags", "body_md", "created_at"]
