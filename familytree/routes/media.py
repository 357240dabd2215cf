"""Image upload: decode an embedded base64 payload and store it under the upload dir."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid
from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from ..errors import StoreError, ValidationError
from ..schemas import ImageUpload
from ..validation import UPLOAD_URL_PREFIX

log = logging.getLogger(__name__)

router = APIRouter(tags=["media"])

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}
_EXTENSION_MIMES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w.+=-]+)*;base64,(?P<payload>.*)$", re.S)


def _upload_dir(request: Request) -> Path:
    return Path(request.app.state.settings.upload_dir)


def decode_image_payload(data: str, filename: str | None = None) -> tuple[bytes, str]:
    """Return (bytes, extension) for a data URL or a bare base64 string.

    A bare payload takes its type from ``filename``.
    """

    m = _DATA_URL_RE.match(data.strip())
    if m:
        mime = (m.group("mime") or "").lower()
        payload = m.group("payload")
    else:
        mime = _EXTENSION_MIMES.get(Path(filename or "").suffix.lower(), "")
        payload = data

    ext = _MIME_EXTENSIONS.get(mime)
    if ext is None:
        allowed = ", ".join(sorted(_EXTENSION_MIMES))
        raise ValidationError([f"Unsupported image type. Allowed: {allowed}"])

    try:
        raw = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(["Image payload is not valid base64"]) from None
    if not raw:
        raise ValidationError(["Image payload is empty"])
    return raw, ext


# ---------------------------------------------------------------------------
# POST /images
# ---------------------------------------------------------------------------

@router.post("/images", status_code=201)
def upload_image(body: ImageUpload, request: Request) -> dict[str, Any]:
    max_bytes = request.app.state.settings.max_upload_bytes

    raw, ext = decode_image_payload(body.data, body.filename)
    if len(raw) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Image too large ({len(raw):,} bytes). Max: {max_bytes:,} bytes.",
        )

    name = f"{uuid.uuid4().hex}{ext}"
    target = _upload_dir(request) / name
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(raw)
    except OSError as exc:
        raise StoreError(f"could not write image {name}: {exc}") from exc

    log.info("stored uploaded image %s (%d bytes)", name, len(raw))
    return {"path": f"{UPLOAD_URL_PREFIX}{name}", "size": len(raw)}
