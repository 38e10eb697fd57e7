from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                (
                    "network",
                    models.CharField(
                        choices=[("MTN", "MTN"), ("Telecel", "Telecel"), ("AirtelTigo", "AirtelTigo")],
                        max_length=20,
                    ),
                ),
                ("data_amount", models.CharField(max_length=20)),
                ("user_price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("agent_price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("description", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["network", "name"],
            },
        ),
    ]
