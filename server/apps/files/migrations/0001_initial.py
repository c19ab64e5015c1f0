import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='FileRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('owner', models.CharField(db_index=True, max_length=255)),
                ('name', models.CharField(max_length=255)),
                ('filename', models.CharField(help_text='Display filename, replaced by the uploaded name', max_length=255)),
                ('size', models.BigIntegerField(help_text='Declared file size in bytes')),
                ('content_type', models.CharField(blank=True, default='', help_text='Declared type, replaced by the uploaded MIME type', max_length=255)),
                ('storage_path', models.CharField(blank=True, default='', help_text='Storage key of the uploaded bytes, empty until upload', max_length=1024)),
                ('checksum', models.CharField(blank=True, default='', help_text='SHA256 hash of the uploaded bytes', max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('modified_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'File record',
                'verbose_name_plural': 'File records',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['name', 'filename'], name='files_text_idx'),
                    models.Index(fields=['storage_path'], name='files_storage_path_idx'),
                    models.Index(fields=['owner', '-created_at'], name='files_owner_recent_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(size__gte=0), name='files_size_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EventBinding',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_id', models.CharField(db_index=True, max_length=255)),
                ('bound_at', models.DateTimeField(auto_now_add=True)),
                ('file', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bindings', to='files.filerecord')),
            ],
            options={
                'verbose_name': 'Event binding',
                'verbose_name_plural': 'Event bindings',
                'constraints': [
                    models.UniqueConstraint(fields=('file', 'event_id'), name='bindings_file_event_unique'),
                ],
            },
        ),
    ]
