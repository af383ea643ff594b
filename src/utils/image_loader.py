import base64
import io
from pathlib import Path
from typing import Tuple

import httpx
from PIL import Image

from src.utils.exceptions import InvalidParametersError

IMAGE_FETCH_TIMEOUT = 30.0


def _read_bytes(image_ref: str) -> bytes:
    if image_ref.startswith("data:"):
        header, _, payload = image_ref.partition(",")
        if ";base64" not in header:
            raise InvalidParametersError("only base64 data URLs are supported")
        return base64.b64decode(payload)
    if image_ref.startswith(("http://", "https://")):
        response = httpx.get(image_ref, timeout=IMAGE_FETCH_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
        return response.content
    path = Path(image_ref.removeprefix("file://"))
    if not path.is_file():
        raise InvalidParametersError(f"image not found: {image_ref[:64]}")
    return path.read_bytes()


def load_image(image_ref: str) -> Tuple[Image.Image, Tuple[int, int]]:
    """Decode an image from a data URL, http(s) URL or local path.

    Returns the RGB image and its (width, height).
    """
    image = Image.open(io.BytesIO(_read_bytes(image_ref)))
    image = image.convert("RGB")
    return image, image.size
