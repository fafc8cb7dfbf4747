"""
Utilities for the Storyboard Studio pipeline

This module provides:
- Data URL encoding/decoding for generated and uploaded images
- Reference image loading and validation through Pillow
- Project checkpoints written after each completed stage
"""

import base64
import binascii
import io
import os
import re
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from .artifact import Project
from .service import ReferenceImage


_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def sanitize_name(name: str) -> str:
    """Make a name safe for use as a file or directory name."""
    # Replace spaces and special characters with underscores
    sanitized = re.sub(r'[^\w\-_]', '_', name)
    sanitized = re.sub(r'_+', '_', sanitized)
    sanitized = sanitized.strip('_')
    return sanitized.lower() or "untitled"


# ---------- Images ----------

def detect_image_mime_type(image_bytes: bytes) -> str:
    """Identify image bytes with Pillow and return their MIME type.

    Raises:
        ValueError: If the bytes are not an image Pillow can read
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.verify()
            image_format = img.format
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Not a readable image: {e}") from e
    return Image.MIME.get(image_format, "image/png")


def image_bytes_to_data_url(image_bytes: bytes, mime_type: Optional[str] = None) -> str:
    """Encode image bytes as a base64 data URL, detecting the MIME type when not given."""
    if mime_type is None:
        mime_type = detect_image_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def split_data_url(data_url: str) -> Tuple[str, str]:
    """Split a base64 data URL into (mime_type, base64_data).

    Raises:
        ValueError: If the string is not a base64 data URL
    """
    match = _DATA_URL_RE.match(data_url or "")
    if not match or not match.group("data"):
        raise ValueError("Expected a base64 data URL (data:<mime>;base64,<data>)")
    return match.group("mime"), match.group("data")


def data_url_to_reference(data_url: str) -> ReferenceImage:
    mime_type, data = split_data_url(data_url)
    return ReferenceImage(mime_type=mime_type, data=data)


def data_url_to_bytes(data_url: str) -> bytes:
    _, data = split_data_url(data_url)
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Failed to decode base64 image data: {e}") from e


def load_reference_image(path: Union[str, Path]) -> str:
    """Read an image file, validate it with Pillow and return it as a data URL.

    Used for user-supplied character and location reference images.
    """
    image_bytes = Path(path).read_bytes()
    return image_bytes_to_data_url(image_bytes)


# ---------- Checkpoints ----------

def save_project_checkpoint(project: Project, stage, data_dir: str = "data") -> str:
    """Save the project snapshot after a stage for later resumption.

    Args:
        project: The current project aggregate
        stage: Stage enum value that just completed
        data_dir: Root directory for checkpoints

    Returns:
        Path of the written checkpoint file
    """
    checkpoint_dir = os.path.join(data_dir, sanitize_name(project.title))
    os.makedirs(checkpoint_dir, exist_ok=True)

    stage_name = stage.name.lower() if hasattr(stage, "name") else str(stage)
    checkpoint_path = os.path.join(checkpoint_dir, f"project_after_{stage_name}.json")
    with open(checkpoint_path, "w", encoding="utf-8") as f:
        f.write(project.model_dump_json(by_alias=True, indent=2))

    print(f"💾 Checkpoint saved: {checkpoint_path}")
    return checkpoint_path
