# src/hearth/blobs/transforms.py

from __future__ import annotations

import base64
import binascii
import io
import logging
import re

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.+-]+)*;base64,", re.IGNORECASE)


def recompress_image(payload: bytes, *, max_px: int, quality: int) -> bytes:
    """
    Shrink an image to fit within max_px x max_px (aspect kept) and re-encode as JPEG.

    Raises ValueError if the payload is not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(payload)) as img:
            img.load()
            if img.mode not in ("RGB", "L"):
                # JPEG has no alpha: flatten onto white
                rgba = img.convert("RGBA")
                flat = Image.new("RGB", rgba.size, (255, 255, 255))
                flat.paste(rgba, mask=rgba.getchannel("A"))
                img = flat
            else:
                img = img.copy()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError("payload is not a decodable image") from e

    img.thumbnail((max_px, max_px), Image.Resampling.LANCZOS)

    out = io.BytesIO()
    img.save(out, format="JPEG", quality=int(quality), optimize=True)
    return out.getvalue()


def decode_text_payload(text: str) -> bytes:
    """
    Decode a legacy text-encoded payload (data URL or bare base64) to bytes.

    Raises ValueError if the text is not valid base64.
    """
    s = text.strip()
    m = _DATA_URL_RE.match(s)
    if m:
        s = s[m.end() :]
    try:
        return base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("text payload is not base64") from e


def encode_data_url(payload: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"
