from django.db import models


class HotelMediaIndex(models.Model):
    """One row per object observed in either storage tier. Rebuildable from storage at any time."""

    external_id = models.CharField(max_length=64, db_index=True, help_text="Hotel id in the booking system (Sabre).")
    slug = models.CharField(max_length=255, db_index=True)

    file_name = models.CharField(max_length=255)
    file_path = models.CharField(max_length=1024, help_text="tier/slug/fileName")
    storage_path = models.CharField(max_length=1024, help_text="Path/key to the object in object storage.")
    public_url = models.CharField(max_length=2048)
    file_type = models.CharField(max_length=100)
    file_size = models.BigIntegerField(default=0)

    sequence = models.PositiveSmallIntegerField(null=True, blank=True, help_text="Parsed from the file name; null when it could not be recovered.")
    original_url = models.CharField(max_length=2048, null=True, blank=True, help_text="Source URL the image was ingested from.")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'hotel_media_index'
        ordering = ['external_id', 'sequence', 'file_path']
        constraints = [
            models.UniqueConstraint(fields=['external_id', 'file_path'], name='uniq_media_index_hotel_path'),
        ]

    def __str__(self):
        return self.file_path


class HotelMediaVersion(models.Model):
    """Cache-busting counter per hotel slug."""

    slug = models.CharField(max_length=255, primary_key=True)
    external_id = models.CharField(max_length=64, db_index=True, blank=True, default='')
    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'hotel_media_version'
        ordering = ['slug']

    def __str__(self):
        return f"{self.slug}@{self.version}"
