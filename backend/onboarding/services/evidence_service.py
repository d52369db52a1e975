# Overview: Photo evidence store (identity documents, shop front) on local disk.

from __future__ import annotations

import uuid
from pathlib import Path

from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import ValidationFailed

# Form field name -> merchant column
EVIDENCE_KINDS = {
    "id_front": "id_front_url",
    "id_back": "id_back_url",
    "passport": "passport_url",
    "shop_photo": "shop_photo_url",
}

URL_PREFIX = "/uploads/merchants/"


def upload_root() -> Path:
    return Path(current_app.config["EVIDENCE_UPLOAD_DIR"])


def _ensure_upload_dir() -> Path:
    d = upload_root() / "merchants"
    d.mkdir(parents=True, exist_ok=True)
    return d


def store_evidence(file, kind: str) -> str:
    """
    Persist an uploaded photo and return its durable URL (/uploads/merchants/...).

    file is a werkzeug FileStorage (anything with .filename and .read()).
    """
    if kind not in EVIDENCE_KINDS:
        raise ValidationFailed(f"Unknown evidence kind: {kind}")
    if file is None or not file.filename:
        raise ValidationFailed(f"{kind} file is required")

    ext = Path(secure_filename(file.filename)).suffix.lower()
    allowed = current_app.config["EVIDENCE_ALLOWED_EXTENSIONS"]
    if ext not in allowed:
        raise ValidationFailed(
            f"{kind} must be one of: {', '.join(sorted(allowed))}",
            {"field": kind},
        )

    content = file.read()
    max_bytes = current_app.config["EVIDENCE_MAX_BYTES"]
    if not content:
        raise ValidationFailed(f"{kind} file is empty", {"field": kind})
    if len(content) > max_bytes:
        raise ValidationFailed(
            f"{kind} must be under {max_bytes // 1024}KB",
            {"field": kind},
        )

    name = f"{kind}-{uuid.uuid4().hex}{ext}"
    with open(_ensure_upload_dir() / name, "wb") as f:
        f.write(content)
    return f"{URL_PREFIX}{name}"


def store_evidence_files(files) -> dict[str, str]:
    """
    Store every recognised evidence field of a multipart upload. Returns {column: url}.

    All or nothing: if one file is refused, the ones already written are removed.
    """
    urls = {}
    try:
        for kind, column in EVIDENCE_KINDS.items():
            file = files.get(kind)
            if file is not None and file.filename:
                urls[column] = store_evidence(file, kind)
    except ValidationFailed:
        for url in urls.values():
            delete_evidence(url)
        raise
    return urls


def delete_evidence(url: str | None) -> bool:
    """Remove a stored file. Only URLs this store issued are touched."""
    if not url or not url.startswith(URL_PREFIX):
        return False
    name = url[len(URL_PREFIX):]
    if not name or name != secure_filename(name):
        return False
    path = upload_root() / "merchants" / name
    if path.exists():
        path.unlink()
        return True
    return False
