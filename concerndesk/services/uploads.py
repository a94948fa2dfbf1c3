# concerndesk/services/uploads.py
"""
Збереження вкладень на диск (UPLOAD_DIR), віддаються статикою /uploads.
В БД лягає лише метадата: filename, original_name, path, mimetype, size, uploaded_at.

Спершу читаємо й перевіряємо всі файли, лише потім пишемо на диск.
Якщо запит падає після запису, роут прибирає файли через discard_uploads.
"""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from concerndesk.core.config import Settings
from concerndesk.core.errors import ValidationFailed
from concerndesk.db.models import utcnow

log = logging.getLogger(__name__)

CONCERN_ATTACHMENTS_LIMIT = 5
CHAT_ATTACHMENTS_LIMIT = 3


def _suffix(name: str | None) -> str:
    suffix = Path(name or "").suffix.lower()
    # лише "нормальні" розширення, без шляхів і сміття
    return suffix if suffix[1:].isalnum() and len(suffix) <= 10 else ""


async def _read_all(
    uploads: Sequence[UploadFile], settings: Settings
) -> List[Tuple[UploadFile, bytes]]:
    out: List[Tuple[UploadFile, bytes]] = []
    for upload in uploads:
        content = await upload.read()
        if len(content) > settings.max_upload_bytes:
            raise ValidationFailed(
                f"File {upload.filename} exceeds {settings.max_upload_mb} MB",
                field="attachments",
            )
        out.append((upload, content))
    return out


async def save_uploads(
    files: Sequence[UploadFile] | None,
    limit: int,
    settings: Settings,
) -> List[Dict[str, Any]]:
    uploads = [f for f in (files or []) if f is not None and f.filename]
    if len(uploads) > limit:
        raise ValidationFailed(f"At most {limit} attachments allowed", field="attachments")
    if not uploads:
        return []

    contents = await _read_all(uploads, settings)

    target = Path(settings.upload_dir)
    await run_in_threadpool(target.mkdir, parents=True, exist_ok=True)

    saved: List[Dict[str, Any]] = []
    try:
        for upload, content in contents:
            filename = f"{uuid.uuid4().hex}{_suffix(upload.filename)}"
            await run_in_threadpool((target / filename).write_bytes, content)
            saved.append({
                "filename": filename,
                "original_name": upload.filename,
                "path": f"/uploads/{filename}",
                "mimetype": upload.content_type,
                "size": len(content),
                "uploaded_at": utcnow().isoformat(),
            })
            log.info("upload_saved", extra={"stored_as": filename, "size": len(content)})
    except Exception:
        await discard_uploads(saved, settings)
        raise
    return saved


def _unlink(paths: List[Path]) -> None:
    for path in paths:
        path.unlink(missing_ok=True)


async def discard_uploads(saved: Sequence[Dict[str, Any]], settings: Settings) -> None:
    """Видаляє файли, записані save_uploads, коли запит так і не зберігся."""
    if not saved:
        return
    target = Path(settings.upload_dir)
    paths = [target / Path(item["filename"]).name for item in saved]
    try:
        await run_in_threadpool(_unlink, paths)
    except OSError:
        log.exception("upload_discard_failed", extra={"files": [p.name for p in paths]})
        return
    log.info("upload_discarded", extra={"files": [p.name for p in paths]})
