import uuid

from django.core.exceptions import ValidationError
from django.db import models


class Org(models.Model):
    id = models.CharField(primary_key=True, max_length=64)
    name = models.CharField(max_length=200)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Project(models.Model):
    id = models.CharField(primary_key=True, max_length=64)
    org = models.ForeignKey(Org, on_delete=models.CASCADE, related_name="projects")
    name = models.CharField(max_length=200)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Artifact(models.Model):
    TYPE_CHOICES = [
        ("markdown", "Markdown"),
        ("code", "Code"),
        ("json", "JSON"),
        ("binary", "Binary"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="artifacts")
    type = models.CharField(max_length=40, choices=TYPE_CHOICES, default="markdown")
    name = models.CharField(max_length=300)
    latest_version = models.ForeignKey(
        "ArtifactVersion",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        return self.name


class ArtifactVersion(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    artifact = models.ForeignKey(Artifact, on_delete=models.CASCADE, related_name="versions")
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.RESTRICT,
        related_name="children",
    )
    branch = models.CharField(max_length=120, default="main")
    content_text = models.TextField(null=True, blank=True)
    blob_url = models.URLField(max_length=1000, blank=True, default="")
    summary = models.TextField(blank=True, default="")
    auto_summary = models.TextField(blank=True, default="")
    diff_json = models.JSONField(null=True, blank=True)
    model_name = models.CharField(max_length=200, blank=True, default="")
    provider = models.CharField(max_length=80, blank=True, default="")
    params_json = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["artifact", "branch", "created_at"], name="workbench_version_branch_idx")]

    def __str__(self) -> str:
        return f"{self.artifact_id}:{self.branch}:{self.id}"

    def clean(self) -> None:
        if self.parent_id and self.parent and self.parent.artifact_id != self.artifact_id:
            raise ValidationError({"parent": "parent version belongs to a different artifact"})

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("artifact versions are immutable")
        self.clean()
        super().save(*args, **kwargs)


class Run(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("done", "Done"),
        ("failed", "Failed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="runs")
    version = models.ForeignKey(ArtifactVersion, on_delete=models.CASCADE, related_name="runs")
    model_name = models.CharField(max_length=200)
    provider = models.CharField(max_length=80, default="openrouter")
    input_json = models.JSONField(default=dict, blank=True)
    output_json = models.JSONField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.version_id}:{self.status}:{self.model_name}"


class StylePreset(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=120, unique=True)
    tone_sys = models.TextField(blank=True)
    params_json = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Conversation(models.Model):
    id = models.CharField(primary_key=True, max_length=64)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="conversations")
    style_preset = models.ForeignKey(
        StylePreset,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="conversations",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        return self.id


class KbSource(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("ingested", "Ingested"),
        ("failed", "Failed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org = models.ForeignKey(Org, on_delete=models.CASCADE, related_name="kb_sources")
    url = models.URLField(max_length=1000)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    ingested_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.url


class KbChunk(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(KbSource, on_delete=models.CASCADE, related_name="chunks")
    url = models.URLField(max_length=1000)
    text = models.TextField()
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["source", "position"]

    def __str__(self) -> str:
        return f"{self.source_id}#{self.position}"


class Playbook(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    org = models.ForeignKey(Org, on_delete=models.CASCADE, related_name="playbooks")
    title = models.CharField(max_length=300)
    tags = models.JSONField(default=list, blank=True)
    tags_text = models.TextField(blank=True, default="")
    body_md = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.title

    def save(self, *args, **kwargs):
        self.tags_text = " ".join(str(tag) for tag in (self.tags or []))
        super().save(*args, **kwargs)
