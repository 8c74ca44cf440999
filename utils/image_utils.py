"""Validation and storage of captured billboard photos."""
import hashlib
import io
import os
import uuid
from datetime import datetime
from typing import Dict, List, Tuple

from PIL import ExifTags, Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
DEFAULT_MAX_IMAGE_BYTES = 8 * 1024 * 1024  # 8 MB
EVIDENCE_MAX_AGE_DAYS = 180

# Pillow format name -> accepted extensions
_FORMAT_EXTENSIONS = {"JPEG": {"jpg", "jpeg"}, "PNG": {"png"}, "WEBP": {"webp"}}
MIME_TYPES = {"jpg": "image/jpeg", "jpeg": "image/jpeg", "png": "image/png", "webp": "image/webp"}


def _fail_if(condition: bool, message: str) -> None:
    if condition:
        raise ValueError(message)


def get_mime_type(ext: str) -> str:
    return MIME_TYPES.get(ext, "application/octet-stream")


def compute_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def extract_exif_metadata(image_bytes: bytes) -> Dict:
    metadata: Dict = {}
    with Image.open(io.BytesIO(image_bytes)) as img:
        exif_data = img.getexif()
        if not exif_data:
            return metadata
        for tag_id, value in exif_data.items():
            tag_name = ExifTags.TAGS.get(tag_id, str(tag_id))
            if isinstance(value, bytes):
                value = value.decode(errors="ignore")
            elif not isinstance(value, (str, int, float)):
                value = str(value)
            metadata[tag_name] = value
    return metadata


def capture_datetime(exif: Dict) -> str | None:
    for key in ("DateTimeOriginal", "DateTime", "DateTimeDigitized"):
        raw = exif.get(key)
        if not raw:
            continue
        try:
            return datetime.strptime(str(raw).strip(), "%Y:%m:%d %H:%M:%S").isoformat()
        except ValueError:
            continue
    return None


def validate_image_file(file: FileStorage, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> Tuple[bytes, str]:
    _fail_if(not file, "No file provided")
    filename = secure_filename(file.filename or "")
    _fail_if(not filename or "." not in filename, "Unsupported file name")
    ext = filename.rsplit(".", 1)[1].lower()
    _fail_if(ext not in ALLOWED_IMAGE_EXTENSIONS, "File type not allowed")

    content = file.read()
    _fail_if(len(content) == 0, "Empty file")
    _fail_if(len(content) > max_bytes, "File exceeds size limits")

    try:
        with Image.open(io.BytesIO(content)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError("Image validation failed") from exc
    _fail_if(ext not in _FORMAT_EXTENSIONS.get(image_format or "", set()), "Invalid image data")

    file.stream.seek(0)
    return content, ext


def save_image_bytes(image_bytes: bytes, upload_dir: str, extension: str) -> Tuple[str, str]:
    os.makedirs(upload_dir, exist_ok=True)
    safe_name = secure_filename(f"{uuid.uuid4().hex}.{extension}")
    path = os.path.join(upload_dir, safe_name)
    with open(path, "wb") as f:
        f.write(image_bytes)
    return path, safe_name


def persist_image(file: FileStorage, upload_dir: str, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> Dict:
    image_bytes, ext = validate_image_file(file, max_bytes=max_bytes)
    exif_meta = extract_exif_metadata(image_bytes)
    captured = capture_datetime(exif_meta)
    if captured:
        exif_meta["_normalized_capture_datetime"] = captured

    stored_path, stored_name = save_image_bytes(image_bytes, upload_dir, ext)
    return {
        "path": stored_path,
        "file_name": stored_name,
        "extension": ext,
        "mime_type": get_mime_type(ext),
        "image_hash": compute_hash(image_bytes),
        "exif_metadata": exif_meta,
        "bytes": image_bytes,
    }


def evidence_flags(exif: Dict, duplicate: bool, now: datetime | None = None, max_age_days: int = EVIDENCE_MAX_AGE_DAYS) -> List[str]:
    """Warnings a reviewing official sees before trusting an uploaded photo."""
    flags = []
    if not exif:
        flags.append("Missing EXIF metadata")
    captured = (exif or {}).get("_normalized_capture_datetime")
    if captured and ((now or datetime.utcnow()) - datetime.fromisoformat(captured)).days > max_age_days:
        flags.append(f"Photo captured more than {max_age_days} days ago")
    if duplicate:
        flags.append("Image matches an earlier submission")
    return flags


def remove_stored_file(path: str | None) -> None:
    """Delete a file written for a row that was rolled back."""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
