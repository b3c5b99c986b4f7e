# hotel_media_internals/clients.py

import logging
import os
from dataclasses import dataclass

import httpx
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from hotel_media.exceptions import HotelNotFound, SourceFetchError, UpstreamServiceError

logger = logging.getLogger(__name__)

USER_AGENT = "hotel-media-pipeline/1.0"


class BaseServiceClient:
    def __init__(self, service_name: str, env_var_name: str, base_url: str = None,
                 transport: httpx.BaseTransport = None, timeout: float = 10.0):
        self.service_name = service_name
        base_url = base_url or os.getenv(env_var_name) or getattr(settings, env_var_name, None)
        if not base_url:
            raise ImproperlyConfigured(f"{env_var_name} is not set in the environment.")
        self.client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def _handle_response(self, response: httpx.Response):
        """
        Interprets a response from another service and raises the matching DRF
        exception. Handles both dictionary and list-based error bodies.
        """
        if 200 <= response.status_code < 300:
            return response.json() if response.content else None

        try:
            error_data = response.json()
        except ValueError:
            error_data = response.reason_phrase

        error_message = f"Error from {self.service_name}"
        if isinstance(error_data, dict):
            error_message = error_data.get("detail", error_data.get("error", str(error_data)))
        elif isinstance(error_data, list):
            error_message = ". ".join(str(item) for item in error_data)
        elif isinstance(error_data, str) and error_data:
            error_message = error_data

        if response.status_code == 403:
            raise PermissionDenied(error_message)
        elif response.status_code == 404:
            raise NotFound(error_message)
        elif response.status_code == 400:
            raise ValidationError(error_message)
        else:
            logger.error(f"{self.service_name} answered {response.status_code}: {error_message}")
            raise UpstreamServiceError(f"{self.service_name} is unavailable.")

    def close(self):
        self.client.close()


@dataclass(frozen=True)
class HotelRef:
    external_id: str
    slug: str


class HotelDirectoryClient(BaseServiceClient):
    """Read-only lookup of hotels in the admin's hotel directory."""

    def __init__(self, **kwargs):
        super().__init__("Hotel Directory", "HOTEL_DIRECTORY_URL", **kwargs)

    def get_hotel(self, external_id: str) -> HotelRef:
        internal_path = f"/internal/v1/hotels/{external_id}"
        try:
            response = self.client.get(internal_path)
        except httpx.RequestError as e:
            logger.error(f"Could not reach the Hotel Directory for {external_id}: {e}")
            raise UpstreamServiceError("Could not connect to the Hotel Directory.")
        try:
            data = self._handle_response(response)
        except NotFound:
            raise HotelNotFound(f"No hotel with external id '{external_id}'.")

        data = data or {}
        slug = data.get("slug")
        if not slug:
            raise ValidationError(f"Hotel '{external_id}' has no slug.")
        return HotelRef(external_id=str(data.get("external_id") or data.get("sabre_id") or external_id), slug=slug)


class SourceImageFetcher:
    """Downloads source images. Safe to share between worker threads."""

    ACCEPTED_TYPES = ("image/", "application/octet-stream", "binary/octet-stream")

    def __init__(self, timeout: float = None, transport: httpx.BaseTransport = None):
        timeout = timeout or settings.HOTEL_MEDIA["FETCH_TIMEOUT"]
        self.client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": "image/*"},
            transport=transport,
        )

    def fetch(self, url: str) -> bytes:
        try:
            response = self.client.get(url)
        except httpx.TimeoutException:
            raise SourceFetchError("timed out while downloading")
        except httpx.RequestError as e:
            raise SourceFetchError(f"could not download ({type(e).__name__})")

        if response.status_code >= 400:
            raise SourceFetchError(f"source answered HTTP {response.status_code}")
        content_type = response.headers.get("content-type", "").lower()
        if content_type and not content_type.startswith(self.ACCEPTED_TYPES):
            raise SourceFetchError(f"source is not an image ({content_type})")
        if not response.content:
            raise SourceFetchError("source returned an empty body")
        return response.content

    def close(self):
        self.client.close()
