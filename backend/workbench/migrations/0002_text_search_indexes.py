from django.db import migrations

INDEXES = {
    "workbench_kbchunk_text_fts": (
        "workbench_kbchunk",
        "to_tsvector('english', COALESCE(text, ''))",
    ),
    "workbench_playbook_text_fts": (
        "workbench_playbook",
        "to_tsvector('english', COALESCE(title, '') || ' ' || COALESCE(tags_text, '') || ' ' || COALESCE(body_md, ''))",
    ),
}


def forward(apps, schema_editor):
    if schema_editor.connection.vendor != "postgresql":
        return
    for name, (table, expression) in INDEXES.items():
        schema_editor.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table} USING gin ({expression})")


def backward(apps, schema_editor):
    if schema_editor.connection.vendor != "postgresql":
        return
    for name in INDEXES:
        schema_editor.execute(f"DROP INDEX IF EXISTS {name}")


class Migration(migrations.Migration):
    dependencies = [
        ("workbench", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(forward, backward),
    ]
