import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


WORK_TYPE_CHOICES = [
    ("zirconia", "Zirconia"),
    ("pfm", "PFM"),
    ("emax", "E-max"),
    ("implant", "Implant"),
    ("ortho", "Orthodontics"),
    ("removable", "Removable"),
    ("composite", "Composite"),
    ("metal_framework", "Metal framework"),
    ("denture", "Denture"),
    ("other", "Other"),
]

PRIORITY_CHOICES = [
    ("normal", "Normal"),
    ("urgent", "Urgent"),
    ("rush", "Rush"),
]

STATUS_CHOICES = [
    ("reception", "Reception"),
    ("cad_design", "CAD design"),
    ("cam_milling", "CAM milling"),
    ("finishing", "Finishing"),
    ("removable", "Removable prosthetics"),
    ("quality_control", "Quality control"),
    ("accounting", "Accounting"),
    ("ready_for_delivery", "Ready for delivery"),
    ("delivered", "Delivered"),
    ("returned", "Returned"),
    ("cancelled", "Cancelled"),
]


def _id():
    return models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")


def _json():
    return models.JSONField(blank=True, null=True, encoder=django.core.serializers.json.DjangoJSONEncoder)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Doctor",
            fields=[
                ("id", _id()),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(db_index=True, max_length=255)),
                ("clinic", models.CharField(blank=True, max_length=255)),
                ("phone", models.CharField(blank=True, max_length=50)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("total_cases", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="UserRole",
            fields=[
                ("id", _id()),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("role", models.CharField(max_length=50)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lab_roles",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["user__username", "role"],
                "unique_together": {("user", "role")},
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", _id()),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("action", models.CharField(db_index=True, max_length=64)),
                ("entity_type", models.CharField(max_length=64)),
                ("entity_id", models.CharField(max_length=64)),
                ("details", models.JSONField(blank=True, default=dict)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="lab_audit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx")],
            },
        ),
        migrations.CreateModel(
            name="InventoryItem",
            fields=[
                ("id", _id()),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(db_index=True, max_length=255)),
                ("sku", models.CharField(max_length=100, unique=True)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("blocks", "Blocks"),
                            ("raw_materials", "Raw materials"),
                            ("consumables", "Consumables"),
                            ("tools", "Tools"),
                            ("equipment", "Equipment"),
                        ],
                        default="blocks",
                        max_length=20,
                    ),
                ),
                ("unit", models.CharField(default="pcs", max_length=50)),
                ("current_stock", models.PositiveIntegerField(default=0)),
                ("minimum_stock", models.PositiveIntegerField(default=0)),
                ("cost_per_unit", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="CaseSequence",
            fields=[
                ("id", _id()),
                ("year", models.PositiveIntegerField(unique=True)),
                ("last_value", models.PositiveIntegerField(default=0)),
            ],
        ),
        migrations.CreateModel(
            name="DentalCase",
            fields=[
                ("id", _id()),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("case_number", models.CharField(editable=False, max_length=32, unique=True)),
                ("doctor_name", models.CharField(max_length=255)),
                ("patient_name", models.CharField(db_index=True, max_length=255)),
                ("work_type", models.CharField(choices=WORK_TYPE_CHOICES, max_length=20)),
                ("teeth_numbers", models.CharField(max_length=255)),
                ("shade_color", models.CharField(blank=True, max_length=20)),
                ("material", models.CharField(blank=True, max_length=100)),
                ("priority", models.CharField(choices=PRIORITY_CHOICES, default="normal", max_length=10)),
                (
                    "current_status",
                    models.CharField(choices=STATUS_CHOICES, db_index=True, default="reception", max_length=32),
                ),
                ("received_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("expected_delivery_date", models.DateField(blank=True, null=True)),
                ("actual_delivery_date", models.DateTimeField(blank=True, null=True)),
                ("cad_data", _json()),
                ("cam_data", _json()),
                ("finishing_data", _json()),
                ("removable_data", _json()),
                ("qc_data", _json()),
                ("total_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("invoice_id", models.CharField(blank=True, max_length=64)),
                ("doctor_notes", models.TextField(blank=True)),
                ("internal_notes", models.TextField(blank=True)),
                ("version", models.PositiveIntegerField(default=0)),
                (
                    "doctor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="cases",
                        to="lab_core.doctor",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_cases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["current_status", "priority"], name="case_status_priority_idx"),
                    models.Index(fields=["doctor", "current_status"], name="case_doctor_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WorkflowTransition",
            fields=[
                ("id", _id()),
                ("from_status", models.CharField(max_length=32)),
                ("to_status", models.CharField(max_length=32)),
                ("department", models.CharField(blank=True, max_length=32)),
                ("notes", models.TextField(blank=True)),
                ("rejection_reason", models.TextField(blank=True)),
                ("assigned_to", models.CharField(blank=True, max_length=255)),
                ("forced", models.BooleanField(default=False)),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "case",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="workflow_history",
                        to="lab_core.dentalcase",
                    ),
                ),
                (
                    "performed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="case_transitions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["started_at", "id"],
                "indexes": [models.Index(fields=["case", "started_at"], name="case_history_idx")],
            },
        ),
        migrations.CreateModel(
            name="InventoryTransaction",
            fields=[
                ("id", _id()),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("deduction", "Deduction"),
                            ("addition", "Addition"),
                            ("adjustment", "Adjustment"),
                            ("purchase", "Purchase"),
                        ],
                        max_length=20,
                    ),
                ),
                ("quantity", models.PositiveIntegerField()),
                ("previous_stock", models.PositiveIntegerField()),
                ("new_stock", models.PositiveIntegerField()),
                ("case_number", models.CharField(blank=True, max_length=32)),
                ("reason", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="lab_core.inventoryitem",
                    ),
                ),
                (
                    "case",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_transactions",
                        to="lab_core.dentalcase",
                    ),
                ),
                (
                    "performed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
    ]
