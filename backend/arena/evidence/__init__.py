"""Claim evidence (screenshot) storage."""

from arena.evidence.store import Evidence
from arena.evidence.store import EvidenceStore
from arena.evidence.store import FileEvidenceStore
from arena.evidence.store import validate_evidence

__all__ = ["Evidence", "EvidenceStore", "FileEvidenceStore", "validate_evidence"]
