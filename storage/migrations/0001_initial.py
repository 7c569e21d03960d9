import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import storage.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Node",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("is_directory", models.BooleanField(default=False)),
                ("size", models.BigIntegerField(default=0)),
                ("content_type", models.CharField(blank=True, max_length=100)),
                ("hash", models.CharField(blank=True, max_length=32)),
                ("version", models.PositiveIntegerField(default=0)),
                ("storage_path", models.CharField(blank=True, max_length=1024)),
                (
                    "storage_adapter",
                    models.CharField(
                        choices=[("local", "Local storage"), ("smb", "SMB share")],
                        default="local",
                        max_length=20,
                    ),
                ),
                ("mount_options", models.JSONField(blank=True, null=True)),
                ("changed", models.DateTimeField(default=django.utils.timezone.now)),
                ("deleted", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("readonly", models.BooleanField(default=False)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="nodes",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="children",
                        to="storage.node",
                    ),
                ),
                (
                    "storage_reference",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="mirrored_nodes",
                        to="storage.node",
                    ),
                ),
            ],
            options={
                "verbose_name": "Node",
                "verbose_name_plural": "Nodes",
                "ordering": ["name"],
                "indexes": [models.Index(fields=["owner", "parent"], name="node_owner_parent_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted__isnull", True)),
                        fields=("owner", "parent", "name"),
                        name="unique_active_child_name",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="FileVersion",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("version", models.PositiveIntegerField()),
                (
                    "type",
                    models.CharField(
                        choices=[("add", "Added"), ("update", "Updated"), ("restore", "Restored")],
                        max_length=10,
                    ),
                ),
                ("size", models.BigIntegerField(default=0)),
                ("hash", models.CharField(blank=True, max_length=32)),
                ("storage_path", models.CharField(blank=True, max_length=1024)),
                ("changed", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "node",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="history",
                        to="storage.node",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["version"],
                "unique_together": {("node", "version")},
            },
        ),
        migrations.CreateModel(
            name="UploadSession",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("size", models.BigIntegerField(default=0)),
                ("chunks_received", models.PositiveIntegerField(default=0)),
                (
                    "total_chunks",
                    models.PositiveIntegerField(
                        default=0, help_text="Declared number of chunks (0 = single-shot upload)"
                    ),
                ),
                ("temp_path", models.CharField(max_length=1024)),
                ("hash", models.CharField(blank=True, max_length=32, null=True)),
                (
                    "expires_at",
                    models.DateTimeField(db_index=True, default=storage.models.default_session_expiry),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="upload_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
