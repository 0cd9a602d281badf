from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='OperationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('operation', models.CharField(help_text='Name of the multi-step flow, e.g. delete_package_with_programs', max_length=100)),
                ('status', models.CharField(choices=[('running', 'Running'), ('completed', 'Completed'), ('failed', 'Failed')], default='running', max_length=20)),
                ('steps', models.JSONField(blank=True, default=list, help_text='Completed steps in order, each {"action": ..., "at": ..., **details}')),
                ('error', models.TextField(blank=True)),
                ('started_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-started_at'],
                'indexes': [
                    models.Index(fields=['-started_at'], name='audit_oplog_started_idx'),
                    models.Index(fields=['status', '-started_at'], name='audit_oplog_status_idx'),
                ],
            },
        ),
    ]
