import asyncio
import logging
import os
import pathlib
from typing import Iterable, List
from .data_uri import DataUriError, decode_data_uri
from .models import Attachment, AttachmentInfo

logger = logging.getLogger(__name__)

class AttachmentError(Exception):
    pass

def _safe_name(name: str) -> str:
    base = os.path.basename(name.replace("\\", "/"))
    if base in ("", ".", ".."):
        raise AttachmentError(f"Unusable attachment name: {name!r}")
    return base

def _write_attachments(attachments: Iterable[Attachment], target_dir: str) -> List[AttachmentInfo]:
    root = pathlib.Path(target_dir)
    root.mkdir(parents=True, exist_ok=True)
    written = []
    for a in attachments:
        if not a.name or not a.url:
            logger.warning("[ATTACHMENTS] Skipping attachment without name or url")
            continue
        try:
            name = _safe_name(a.name)
            mime, data = decode_data_uri(a.url)
        except (AttachmentError, DataUriError) as e:
            logger.warning("[ATTACHMENTS] Skipping %r: %s", a.name, e)
            continue
        (root / name).write_bytes(data)
        logger.info("[ATTACHMENTS] Saved %s (%s, %d bytes)", name, mime, len(data))
        written.append(AttachmentInfo(name=name, mime_type=mime, size=len(data)))
    return written

async def materialize_attachments(attachments: Iterable[Attachment], target_dir: str) -> List[AttachmentInfo]:
    """Decode every attachment into ``target_dir`` and return their metadata.

    Entries with an unusable name or payload are logged and skipped. Raises
    OSError when the directory or a file cannot be written.
    """
    return await asyncio.to_thread(_write_attachments, list(attachments), target_dir)
