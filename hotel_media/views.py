# hotel_media/views.py
import logging

from django.db import DatabaseError
from rest_framework import permissions, status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import APIView

from messaging.event_publisher import media_event_publisher
from .exceptions import TransientIOError
from .repository import MediaIndexRepository
from .serializers import (
    DeleteImageSerializer, HotelMediaIndexSerializer, IngestRequestSerializer, ReconcileAllRequestSerializer,
    ReorderRequestSerializer, VersionQuerySerializer,
)
from .services import MediaPipelineService

logger = logging.getLogger(__name__)


def failure_response(e: Exception, action: str) -> Response:
    """Maps pipeline failures to stable messages. Internal details only go to the log."""
    if isinstance(e, APIException):
        return Response({"error": e.detail}, status=e.status_code)
    if isinstance(e, TransientIOError):
        logger.error(f"{action} failed on storage or network I/O: {e}", exc_info=True)
        return Response({"error": "Image storage is temporarily unavailable. Please try again."},
                        status=status.HTTP_503_SERVICE_UNAVAILABLE)
    logger.exception(f"Unexpected error during {action}")
    return Response({"error": f"An unexpected error occurred during {action}."},
                    status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def announce_change(service: MediaPipelineService, *, external_id: str, slug: str, action: str):
    """Bumps the cache version and publishes the change. Neither may fail the request."""
    version = None
    try:
        version = service.bump_version(slug=slug, external_id=external_id)
    except (APIException, DatabaseError) as e:
        logger.error(f"Could not bump media version for {slug}: {e}")
    media_event_publisher.publish_media_changed(external_id=external_id, slug=slug, action=action, version=version)
    return version


class HotelImageListAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, external_id):
        rows = MediaIndexRepository().find_by_external_id(external_id)
        return Response(HotelMediaIndexSerializer(rows, many=True).data)


class IngestImagesAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, external_id):
        serializer = IngestRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        service = MediaPipelineService()
        try:
            result = service.ingest(
                external_id,
                serializer.validated_data['images'],
                slug=serializer.validated_data.get('slug'),
            )
        except Exception as e:
            return failure_response(e, "image ingestion")

        data = result.to_dict()
        if result.statistics["succeeded"]:
            data["version"] = announce_change(service, external_id=external_id, slug=result.slug, action="ingested")
        return Response(data, status=status.HTTP_200_OK)


class ImportSabreImagesAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, external_id):
        service = MediaPipelineService()
        try:
            result = service.import_from_sabre(external_id)
        except Exception as e:
            return failure_response(e, "Sabre image import")

        data = result.to_dict()
        if result.statistics["succeeded"]:
            data["version"] = announce_change(service, external_id=external_id, slug=result.slug, action="imported")
        return Response(data)


class ReorderImagesAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ReorderRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        service = MediaPipelineService()
        try:
            result = service.reorder(serializer.validated_data['slug'], serializer.validated_data['ordered_paths'])
        except Exception as e:
            return failure_response(e, "image reordering")

        data = result.to_dict()
        if result.changed:
            data["version"] = announce_change(service, external_id=result.external_id, slug=result.slug, action="reordered")
        return Response(data)


class DeleteImageAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def delete(self, request):
        serializer = DeleteImageSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        path = serializer.validated_data['path']

        service = MediaPipelineService()
        try:
            result = service.delete_image(path)
        except Exception as e:
            return failure_response(e, "image deletion")

        data = result.to_dict()
        data["version"] = announce_change(service, external_id=result.external_id, slug=result.slug, action="deleted")
        return Response(data)


class FolderSyncAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, external_id):
        service = MediaPipelineService()
        try:
            result = service.folder_sync(external_id)
        except Exception as e:
            return failure_response(e, "folder sync")

        data = result.to_dict()
        if result.copied_to_public or result.copied_to_originals:
            data["version"] = announce_change(service, external_id=external_id, slug=result.slug, action="synced")
        return Response(data)


class ReconcileHotelIndexAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, external_id):
        try:
            result = MediaPipelineService().reconcile_one(external_id)
        except Exception as e:
            return failure_response(e, "index rebuild")
        return Response(result.to_dict())


class ReconcileAllIndexAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ReconcileAllRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = MediaPipelineService().reconcile_all(dry_run=serializer.validated_data['dry_run'])
        except Exception as e:
            return failure_response(e, "index sweep")
        return Response(result.to_dict())


class IndexStatusAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        try:
            return Response(MediaPipelineService().index_status())
        except Exception as e:
            return failure_response(e, "index status check")


class MediaVersionAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        serializer = VersionQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        try:
            version = MediaPipelineService().get_version(**serializer.validated_data)
        except Exception as e:
            return failure_response(e, "version lookup")
        return Response({**serializer.validated_data, "version": version})

    def post(self, request):
        serializer = VersionQuerySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            version = MediaPipelineService().bump_version(**serializer.validated_data)
        except Exception as e:
            return failure_response(e, "version bump")
        return Response({**serializer.validated_data, "version": version})
