"""
Error types raised by the eQTL scan
"""

from typing import Iterable


def _preview(ids: Iterable, limit: int = 5) -> str:
    ids = [str(i) for i in ids]
    text = ', '.join(ids[:limit])
    if len(ids) > limit:
        text += ', ...'
    return text


class SampleAlignmentError(ValueError):
    """Sample keys differ in identity, count or order between input tables."""


class MissingGenotypeError(ValueError):
    """Missing genotype calls reached the encoder (calls are never imputed)."""


class MissingMetadataError(KeyError):
    """Identifiers could not be resolved against their metadata table."""

    def __init__(self, kind: str, identifiers: Iterable, reason: str = "not found in metadata"):
        self.kind = kind
        self.identifiers = [str(i) for i in identifiers]
        super().__init__(
            f"{len(self.identifiers)} {kind} identifier(s) {reason}: "
            f"{_preview(self.identifiers)}"
        )

    def __str__(self) -> str:
        return self.args[0]
