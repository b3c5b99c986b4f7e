from django.apps import AppConfig


class HotelMediaInternalsConfig(AppConfig):
    name = 'hotel_media_internals'
