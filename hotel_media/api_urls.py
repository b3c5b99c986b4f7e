from django.urls import path

from .views import (
    DeleteImageAPIView, FolderSyncAPIView, HotelImageListAPIView, ImportSabreImagesAPIView, IndexStatusAPIView,
    IngestImagesAPIView, MediaVersionAPIView, ReconcileAllIndexAPIView, ReconcileHotelIndexAPIView,
    ReorderImagesAPIView,
)

urlpatterns = [
    path('hotels/<str:external_id>/images/', HotelImageListAPIView.as_view(), name='hotel-image-list'),
    path('hotels/<str:external_id>/images/ingest/', IngestImagesAPIView.as_view(), name='hotel-image-ingest'),
    path('hotels/<str:external_id>/images/import-sabre/', ImportSabreImagesAPIView.as_view(), name='hotel-image-import-sabre'),
    path('hotels/<str:external_id>/images/sync-folders/', FolderSyncAPIView.as_view(), name='hotel-image-sync-folders'),
    path('hotels/<str:external_id>/index/reconcile/', ReconcileHotelIndexAPIView.as_view(), name='hotel-index-reconcile'),
    path('images/', DeleteImageAPIView.as_view(), name='image-delete'),
    path('images/reorder/', ReorderImagesAPIView.as_view(), name='image-reorder'),
    path('index/reconcile/', ReconcileAllIndexAPIView.as_view(), name='index-reconcile-all'),
    path('index/status/', IndexStatusAPIView.as_view(), name='index-status'),
    path('versions/', MediaVersionAPIView.as_view(), name='media-version'),
]
