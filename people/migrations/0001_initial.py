import decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Player',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('email', models.EmailField(blank=True, db_index=True, help_text='Matched case-insensitively when importing form responses', max_length=254, null=True)),
                ('phone', models.CharField(blank=True, max_length=30, null=True)),
                ('credit', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), help_text='Stored credit balance, adjusted when registrations are removed', max_digits=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['last_name', 'first_name'],
            },
        ),
    ]
