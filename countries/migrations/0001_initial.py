import django.db.models.functions.text
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Country",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("capital", models.CharField(blank=True, max_length=255, null=True)),
                ("region", models.CharField(blank=True, max_length=255, null=True)),
                ("population", models.BigIntegerField()),
                ("currency_code", models.CharField(blank=True, max_length=32, null=True)),
                ("exchange_rate", models.FloatField(blank=True, null=True)),
                ("estimated_gdp", models.FloatField(blank=True, null=True)),
                ("flag_url", models.URLField(blank=True, max_length=512, null=True)),
                ("last_refreshed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "countries",
                "verbose_name_plural": "countries",
                "constraints": [
                    models.UniqueConstraint(
                        django.db.models.functions.text.Lower("name"),
                        name="unique_country_name_ci",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="SyncMetadata",
            fields=[
                ("meta_key", models.CharField(max_length=128, primary_key=True, serialize=False)),
                ("meta_value", models.CharField(blank=True, max_length=1024, null=True)),
                ("updated_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "metadata",
                "verbose_name_plural": "sync metadata",
            },
        ),
    ]
