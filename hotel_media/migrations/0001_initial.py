from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='HotelMediaIndex',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('external_id', models.CharField(db_index=True, help_text='Hotel id in the booking system (Sabre).', max_length=64)),
                ('slug', models.CharField(db_index=True, max_length=255)),
                ('file_name', models.CharField(max_length=255)),
                ('file_path', models.CharField(help_text='tier/slug/fileName', max_length=1024)),
                ('storage_path', models.CharField(help_text='Path/key to the object in object storage.', max_length=1024)),
                ('public_url', models.CharField(max_length=2048)),
                ('file_type', models.CharField(max_length=100)),
                ('file_size', models.BigIntegerField(default=0)),
                ('sequence', models.PositiveSmallIntegerField(blank=True, help_text='Parsed from the file name; null when it could not be recovered.', null=True)),
                ('original_url', models.CharField(blank=True, help_text='Source URL the image was ingested from.', max_length=2048, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'hotel_media_index',
                'ordering': ['external_id', 'sequence', 'file_path'],
            },
        ),
        migrations.AddConstraint(
            model_name='hotelmediaindex',
            constraint=models.UniqueConstraint(fields=('external_id', 'file_path'), name='uniq_media_index_hotel_path'),
        ),
        migrations.CreateModel(
            name='HotelMediaVersion',
            fields=[
                ('slug', models.CharField(max_length=255, primary_key=True, serialize=False)),
                ('external_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'hotel_media_version',
                'ordering': ['slug'],
            },
        ),
    ]
