"""Core algorithms of the orthology-merging and exemplar-selection stages."""

from orthomatrix.core.fasta import AlignedSequence, Alignment, SequenceMeta

__all__ = ["AlignedSequence", "Alignment", "SequenceMeta"]
