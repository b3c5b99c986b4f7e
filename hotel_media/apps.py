from django.apps import AppConfig


class HotelMediaConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'hotel_media'
    verbose_name = 'Hotel media'
