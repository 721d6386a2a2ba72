# app/core/file_storage.py
import os
import uuid
import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

FORM_UPLOAD_DIR = os.getenv("FORM_UPLOAD_DIR", "uploads/client_forms")


def get_file_extension(filename: str) -> str:
    """Upper-case extension without the dot ("scan.pdf" -> "PDF")."""
    _, ext = os.path.splitext(filename or "")
    return ext.lstrip(".").upper()


def is_accepted_format(filename: str, accepted_formats: Optional[str]) -> bool:
    if not accepted_formats:
        return True
    accepted = {fmt.strip().upper() for fmt in accepted_formats.split(",") if fmt.strip()}
    # JPG and JPEG are the same format
    if "JPG" in accepted:
        accepted.add("JPEG")
    return get_file_extension(filename) in accepted


def save_client_form_file(client_form_id: int, original_filename: str, content: bytes) -> Tuple[str, str]:
    """
    Writes an uploaded file under FORM_UPLOAD_DIR/<client_form_id>/.
    Returns (stored_filename, file_path). The original name is never used on disk.
    """
    form_dir = os.path.join(FORM_UPLOAD_DIR, str(client_form_id))
    os.makedirs(form_dir, exist_ok=True)

    ext = get_file_extension(original_filename).lower()
    stored_filename = f"{uuid.uuid4().hex}.{ext}" if ext else uuid.uuid4().hex
    file_path = os.path.join(form_dir, stored_filename)

    with open(file_path, "wb") as f:
        f.write(content)

    logger.info(f"Stored document for client form {client_form_id} as {stored_filename} ({len(content)} bytes).")
    return stored_filename, file_path


def delete_stored_file(file_path: Optional[str]) -> bool:
    if not file_path:
        return False
    try:
        os.remove(file_path)
        return True
    except FileNotFoundError:
        logger.warning(f"Stored file {file_path} was already missing on delete.")
        return False
