# hotel_media_internals/sabre.py
"""
Sabre hotel image import: OAuth2 token provider, image API client, and the
decoder that turns Sabre's many image response layouts into a URL list.
"""
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Union

import httpx
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from hotel_media.exceptions import UpstreamServiceError

logger = logging.getLogger(__name__)

TOKEN_SKEW_SECONDS = 300
DEFAULT_TOKEN_LIFETIME = 604800


class TokenProvider:
    """
    Holds one client-credentials access token and refreshes it when it is
    within `skew_seconds` of expiring. Inject it where a token is needed.
    """

    def __init__(self, client_id: str, client_secret: str, auth_url: str,
                 http_client: httpx.Client = None, skew_seconds: int = TOKEN_SKEW_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        if not client_id or not client_secret:
            raise ImproperlyConfigured("SABRE_CLIENT_ID and SABRE_CLIENT_SECRET must be set.")
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_url = auth_url
        self.http_client = http_client or httpx.Client(timeout=10.0)
        self.skew_seconds = skew_seconds
        self.clock = clock
        self.token: Optional[str] = None
        self.expires_at: float = 0.0
        self._lock = threading.Lock()

    def get_token(self) -> str:
        with self._lock:
            if self.token is None or self.clock() >= self.expires_at - self.skew_seconds:
                self._refresh()
            return self.token

    def invalidate(self) -> None:
        with self._lock:
            self.token = None
            self.expires_at = 0.0

    def _refresh(self) -> None:
        try:
            response = self.http_client.post(
                self.auth_url,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
            )
        except httpx.RequestError as e:
            logger.error(f"Sabre token request failed: {e}")
            raise UpstreamServiceError("Could not connect to Sabre.")
        if response.status_code != 200:
            logger.error(f"Sabre token request answered {response.status_code}: {response.text[:200]}")
            raise UpstreamServiceError("Sabre rejected the credentials.")

        try:
            data = response.json()
            token = data["access_token"]
            lifetime = float(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Sabre token response could not be read ({e!r}): {response.text[:200]}")
            raise UpstreamServiceError("Sabre answered the token request with an unreadable response.")
        if not token:
            raise UpstreamServiceError("Sabre answered the token request without a token.")
        self.token = token
        self.expires_at = self.clock() + lifetime
        logger.info("Obtained a new Sabre access token.")


# --- Response decoding ---

@dataclass(frozen=True)
class SabreImage:
    url: str
    caption: Optional[str] = None
    category: Optional[str] = None


@dataclass
class DecodedImages:
    shape: str
    images: List[SabreImage] = field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [image.url for image in self.images]


@dataclass
class UnparseableResponse:
    reason: str


DecodeResult = Union[DecodedImages, UnparseableResponse]

_URL_KEYS = ("URL", "Url", "url", "imageURL", "imageUrl", "src", "href")
_TEXT_URL_RE = re.compile(r"https?://[^\s\"'<>]+\.(?:jpg|jpeg|png|webp)", re.IGNORECASE)


def _dig(node: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _hotel_media_info(root: dict) -> Any:
    """v5 hotel details layout: hotel-level images plus per-room images."""
    media = _dig(root, "hotelMediaInfo", "images")
    if media is None:
        return None
    rooms = root.get("roomDescriptions") or []
    room_images = [room.get("images") for room in rooms if isinstance(room, dict) and room.get("images")]
    return [media] + room_images


# Tried in this order; the first layout present in the payload wins.
_SHAPES = (
    ("GetHotelImageRS", lambda root: _dig(root, "GetHotelImageRS", "HotelImages", "HotelImage")),
    ("GetHotelDetailsRS", lambda root: _dig(root, "GetHotelDetailsRS", "HotelDetailsInfo", "HotelContent", "MediaItems", "MediaItem")),
    ("hotelMediaInfo", _hotel_media_info),
    ("Images", lambda root: _dig(root, "Images", "Image")),
    ("HotelContentRS", lambda root: _dig(root, "HotelContentRS", "HotelContent", "MediaItems", "MediaItem")),
    ("HotelImageList", lambda root: _dig(root, "HotelImageList", "HotelImage")),
)


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict):
        for key in ("data", "result", "payload"):
            inner = payload.get(key)
            if isinstance(inner, (dict, list)):
                return inner
    return payload


def _collect(node: Any, found: List[SabreImage], depth: int = 0) -> None:
    if node is None or depth > 8:
        return
    if isinstance(node, str):
        if node.strip():
            found.append(SabreImage(url=node.strip()))
        return
    if isinstance(node, list):
        for item in node:
            _collect(item, found, depth + 1)
        return
    if not isinstance(node, dict):
        return

    url = next((node[key] for key in _URL_KEYS if isinstance(node.get(key), str) and node[key].strip()), None)
    if url:
        found.append(SabreImage(
            url=url.strip(),
            caption=node.get("Caption") or node.get("caption") or node.get("description"),
            category=node.get("Category") or node.get("category") or node.get("imageType"),
        ))
    for nested in (node.get("Image"), _dig(node, "Images", "Image"), _dig(node, "MediaItems", "MediaItem"), _dig(node, "Links", "Link")):
        _collect(nested, found, depth + 1)


def _dedupe(images: List[SabreImage]) -> List[SabreImage]:
    seen = set()
    unique = []
    for image in images:
        if image.url not in seen:
            seen.add(image.url)
            unique.append(image)
    return unique


def decode_image_payload(payload: Any) -> DecodeResult:
    """
    Decodes a Sabre image response.

    Known layouts are tried in a fixed priority order, first on the payload
    itself and then inside a data/result/payload envelope. A bare list is
    accepted last. Anything else is an UnparseableResponse.
    """
    candidates = [payload]
    unwrapped = _unwrap(payload)
    if unwrapped is not payload:
        candidates.append(unwrapped)

    for root in candidates:
        if not isinstance(root, dict):
            continue
        for shape, locate in _SHAPES:
            node = locate(root)
            if node:
                found = []
                _collect(node, found)
                return DecodedImages(shape=shape, images=_dedupe(found))

    for root in candidates:
        if isinstance(root, list):
            found = []
            _collect(root, found)
            return DecodedImages(shape="list", images=_dedupe(found))

    if isinstance(payload, dict):
        return UnparseableResponse(f"no known image layout among keys {sorted(payload)[:10]}")
    return UnparseableResponse(f"unexpected payload type {type(payload).__name__}")


def decode_image_text(text: str) -> DecodeResult:
    """Fallback for XML/HTML answers: pulls image URLs straight out of the text."""
    urls = list(dict.fromkeys(match.strip() for match in _TEXT_URL_RE.findall(text or "")))
    if not urls:
        return UnparseableResponse("no image URLs in a non-JSON response")
    return DecodedImages(shape="text", images=[SabreImage(url=url) for url in urls])


class SabreImageClient:
    """Fetches a hotel's image listing from the Sabre content API."""

    def __init__(self, token_provider: TokenProvider, base_url: str = None, version: str = None,
                 http_client: httpx.Client = None, timeout: float = None):
        self.token_provider = token_provider
        self.base_url = (base_url or settings.SABRE_API_BASE_URL).rstrip("/")
        self.version = version or settings.SABRE_API_VERSION
        self.http_client = http_client or httpx.Client(timeout=timeout or settings.SABRE_TIMEOUT)

    def endpoints(self, hotel_code: str) -> List[tuple]:
        path = f"{self.base_url}/{self.version}/shop/hotels"
        return [
            (f"{path}/images", {"hotelCode": hotel_code, "imageSize": "Large"}),
            (f"{path}/images", {"hotelCode": hotel_code, "category": "ALL"}),
            (f"{path}/images", {"hotelCode": hotel_code}),
            (f"{path}/image", {"hotelCode": hotel_code}),
        ]

    def fetch_images(self, hotel_code: str) -> DecodeResult:
        last_status = None
        for url, params in self.endpoints(hotel_code):
            response = self._get(url, params)
            if response.status_code == 401:
                # Token revoked early; one retry with a fresh one.
                self.token_provider.invalidate()
                response = self._get(url, params)
            if response.status_code == 200:
                return self._decode(response)
            last_status = response.status_code
            logger.info(f"Sabre image endpoint {url} answered {response.status_code} for {hotel_code}.")

        logger.error(f"No Sabre image endpoint answered for {hotel_code} (last status {last_status}).")
        raise UpstreamServiceError("Sabre did not return images for this hotel.")

    def _get(self, url: str, params: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.token_provider.get_token()}", "Accept": "application/json"}
        try:
            return self.http_client.get(url, params=params, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Sabre request to {url} failed: {e}")
            raise UpstreamServiceError("Could not connect to Sabre.")

    def _decode(self, response: httpx.Response) -> DecodeResult:
        if "json" in response.headers.get("content-type", ""):
            try:
                return decode_image_payload(response.json())
            except ValueError:
                pass
        return decode_image_text(response.text)


def build_sabre_client() -> SabreImageClient:
    provider = TokenProvider(
        client_id=settings.SABRE_CLIENT_ID,
        client_secret=settings.SABRE_CLIENT_SECRET,
        auth_url=settings.SABRE_AUTH_URL,
    )
    return SabreImageClient(provider)
