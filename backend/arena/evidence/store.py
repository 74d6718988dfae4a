"""Screenshot evidence storage for win claims."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from matchroom.errors import EvidenceRequired
from matchroom.errors import InvalidEvidence

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}
_REF_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.(png|jpg|webp)$")
_SUFFIX_CONTENT_TYPES = {suffix: content_type for content_type, suffix in ALLOWED_CONTENT_TYPES.items()}


@dataclass(frozen=True, slots=True)
class Evidence:
    ref: str
    content_type: str
    blob: bytes


class EvidenceStore(Protocol):
    def put(self, claim_id: str, blob: bytes, content_type: str) -> str: ...

    def get(self, ref: str) -> Evidence: ...

    def delete(self, ref: str) -> None: ...


def sniff_content_type(blob: bytes) -> str | None:
    """Return the image type implied by the file signature, if it is one we accept."""
    if blob.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if blob.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if len(blob) >= 12 and blob[:4] == b"RIFF" and blob[8:12] == b"WEBP":
        return "image/webp"
    return None


def validate_evidence(blob: bytes, content_type: str | None, *, max_bytes: int) -> str:
    """Check an upload and return its canonical content type."""
    if not blob:
        raise EvidenceRequired("evidence file is empty")
    if len(blob) > max_bytes:
        raise InvalidEvidence("evidence file is too large", size=len(blob), max_bytes=max_bytes)

    declared = (content_type or "").lower()
    if declared == "image/jpg":
        declared = "image/jpeg"
    if declared not in ALLOWED_CONTENT_TYPES:
        raise InvalidEvidence(
            "unsupported evidence type; use PNG, JPEG or WebP",
            content_type=content_type,
        )
    if sniff_content_type(blob) != declared:
        raise InvalidEvidence("evidence content does not match its declared type", content_type=content_type)
    return declared


class FileEvidenceStore:
    """Store one file per claim under ``root``; writes are atomic."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def put(self, claim_id: str, blob: bytes, content_type: str) -> str:
        suffix = ALLOWED_CONTENT_TYPES.get(content_type)
        if suffix is None:
            raise InvalidEvidence("unsupported evidence type", content_type=content_type)
        ref = f"{claim_id}{suffix}"
        if not _REF_PATTERN.match(ref):
            raise InvalidEvidence("invalid claim id for evidence", claim_id=claim_id)

        self._root.mkdir(parents=True, exist_ok=True)
        target = self._root / ref
        temp_path = target.with_name(f"{target.name}.tmp")
        temp_path.write_bytes(blob)
        temp_path.replace(target)
        logger.info("stored evidence %s (%d bytes)", ref, len(blob))
        return ref

    def get(self, ref: str) -> Evidence:
        match = _REF_PATTERN.match(ref)
        if match is None:
            raise FileNotFoundError(ref)
        path = self._root / ref
        if not path.is_file():
            raise FileNotFoundError(ref)
        return Evidence(
            ref=ref,
            content_type=_SUFFIX_CONTENT_TYPES[f".{match.group(1)}"],
            blob=path.read_bytes(),
        )

    def delete(self, ref: str) -> None:
        if _REF_PATTERN.match(ref) is None:
            return
        (self._root / ref).unlink(missing_ok=True)


__all__ = [
    "ALLOWED_CONTENT_TYPES",
    "Evidence",
    "EvidenceStore",
    "FileEvidenceStore",
    "sniff_content_type",
    "validate_evidence",
]
