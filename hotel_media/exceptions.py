# hotel_media/exceptions.py
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError


# --- Rejected before any I/O; safe to show to the caller as-is ---

class MediaValidationError(ValidationError):
    default_detail = "Invalid media request."


class InvalidMediaName(MediaValidationError):
    default_detail = "Invalid media name component."


class ReorderValidationError(MediaValidationError):
    default_detail = "Invalid reorder request."


class StaleOrdering(ReorderValidationError):
    default_detail = "The requested ordering no longer matches the stored images."


class CollisionRisk(ReorderValidationError):
    default_detail = "The reorder request could overwrite an image."


class HotelNotFound(NotFound):
    default_detail = "Hotel not found."


class ImageNotFound(NotFound):
    default_detail = "Image not found."


class VersionSlugRequired(MediaValidationError):
    default_detail = "A slug is required to start a version counter."


# --- Raised mid-operation ---

class ReorderConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Leftover temporary objects from an earlier reorder conflict with live images."
    default_code = "reorder_conflict"


class ReorderAborted(APIException):
    """
    The rename plan stopped part-way. Objects are left either tmp-tagged or
    already final, and the next reorder call recovers them.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Reordering was interrupted. Run it again to finish."
    default_code = "reorder_aborted"

    def __init__(self, detail=None, code=None, steps=None):
        super().__init__(detail, code)
        self.steps = steps or []


class UpstreamServiceError(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "An upstream service could not be reached."
    default_code = "upstream_error"


# --- Internal I/O failures; never shown verbatim to callers ---

class TransientIOError(Exception):
    pass


class StorageError(TransientIOError):
    pass


class ObjectExists(StorageError):
    pass


class MoveUnsupported(StorageError):
    pass


class RelocationError(StorageError):
    def __init__(self, source: str, target: str, stage: str, cause: Exception = None):
        self.source = source
        self.target = target
        self.stage = stage
        self.cause = cause
        super().__init__(f"Relocating '{source}' to '{target}' failed at {stage}: {cause}")


class SourceFetchError(TransientIOError):
    pass