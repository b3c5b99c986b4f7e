from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/hotel-media/', include('hotel_media.api_urls')),
    # Queue consumers run as management commands, not via URLs
]
