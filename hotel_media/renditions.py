# hotel_media/renditions.py
import io

from PIL import Image, ImageOps, UnidentifiedImageError

PIL_FORMATS = {
    "jpg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "avif": "AVIF",
}


class RenditionError(Exception):
    pass


def build_public_rendition(data: bytes, width: int, fmt: str, quality: int = 70) -> bytes:
    """
    Resize to at most `width` pixels wide (never upscaling) and re-encode.
    Raises RenditionError when the bytes are not an image or the encoder is unavailable.
    """
    pil_format = PIL_FORMATS.get(fmt)
    if pil_format is None:
        raise RenditionError(f"Unsupported rendition format '{fmt}'.")

    try:
        with Image.open(io.BytesIO(data)) as source:
            img = ImageOps.exif_transpose(source)
            if img.width > width:
                height = max(1, round(img.height * width / img.width))
                img = img.resize((width, height), Image.Resampling.LANCZOS)

            if pil_format == "JPEG" and img.mode != "RGB":
                img = img.convert("RGB")
            elif img.mode not in ("RGB", "RGBA", "L"):
                img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")

            buf = io.BytesIO()
            img.save(buf, format=pil_format, quality=quality)
            return buf.getvalue()
    except (UnidentifiedImageError, OSError, KeyError, ValueError) as e:
        raise RenditionError(f"Could not build {fmt} rendition: {e}") from e
