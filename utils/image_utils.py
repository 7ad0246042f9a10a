"""Image upload validation for forensic analysis."""
import hashlib
import io
import os
from typing import Dict

from PIL import ExifTags, Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
# Pillow format name -> canonical extension
ALLOWED_IMAGE_FORMATS = {"JPEG": "jpeg", "PNG": "png", "GIF": "gif", "WEBP": "webp"}
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MB


class ImageValidationError(ValueError):
    """Raised when an upload is not an acceptable image."""


def _fail_if(condition: bool, message: str) -> None:
    if condition:
        raise ImageValidationError(message)


def _get_mime_type(ext: str) -> str:
    mapping = {
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "png": "image/png",
        "gif": "image/gif",
        "webp": "image/webp",
    }
    return mapping.get(ext, "application/octet-stream")


def compute_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def extract_exif_metadata(img: Image.Image) -> Dict:
    metadata: Dict = {}
    try:
        exif_data = img.getexif()
    except (AttributeError, OSError):
        return metadata
    for tag_id, value in (exif_data or {}).items():
        tag_name = ExifTags.TAGS.get(tag_id, str(tag_id))
        if isinstance(value, bytes):
            value = value.decode(errors="ignore")
        elif not isinstance(value, (str, int, float)):
            value = str(value)
        metadata[tag_name] = value
    return metadata


def validate_image_file(file: FileStorage, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> Dict:
    """Check name, size, and decoded format of an upload and return its bytes plus metadata."""
    _fail_if(not file, "No image file provided")
    filename = secure_filename(file.filename or "")
    _fail_if(not filename or "." not in filename, "Unsupported file name")
    ext = filename.rsplit(".", 1)[1].lower()
    _fail_if(ext not in ALLOWED_IMAGE_EXTENSIONS, "Invalid file type. Only images are allowed.")

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    _fail_if(size == 0, "Empty file")
    _fail_if(size > max_bytes, "Image size exceeds limit")

    content = file.read()
    _fail_if(len(content) > max_bytes, "Image size exceeds limit")

    try:
        with Image.open(io.BytesIO(content)) as img:
            detected = ALLOWED_IMAGE_FORMATS.get(img.format or "")
            width, height = img.size
            exif = extract_exif_metadata(img)
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ImageValidationError("Invalid image data") from exc
    _fail_if(detected is None, "Invalid image data")

    file.stream.seek(0)
    return {
        "bytes": content,
        "file_name": filename,
        "extension": detected,
        "mime_type": _get_mime_type(detected),
        "image_hash": compute_hash(content),
        "width": width,
        "height": height,
        "exif_metadata": exif,
    }
