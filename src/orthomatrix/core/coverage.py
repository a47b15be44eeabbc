from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from orthomatrix.core.ids import natural_key
from orthomatrix.exceptions import CoverageInvariantError
from orthomatrix.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class CoverageSelection:
    """Alignments chosen for the supermatrix and the coverage they give each exemplar."""

    alignments: list[str] = field(default_factory=list)
    coverage: dict[str, int] = field(default_factory=dict)
    ordered_exemplars: list[str] = field(default_factory=list)
    skipped_exemplars: list[str] = field(default_factory=list)


def restrict_to_exemplars(
    exemplars: Iterable[str],
    alignments_for_taxon: Mapping[str, Sequence[str]],
    taxa_for_alignment: Mapping[str, Sequence[str]],
) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
    """Drop non-exemplar taxa from both indexes, and alignments left without exemplars."""

    wanted = set(exemplars)
    taxa_by_aln: dict[str, list[str]] = {}
    for name, taxa in taxa_for_alignment.items():
        kept = [taxon_id for taxon_id in taxa if taxon_id in wanted]
        if kept:
            taxa_by_aln[name] = kept

    alns_by_taxon = {
        taxon_id: [name for name in names if name in taxa_by_aln]
        for taxon_id, names in alignments_for_taxon.items()
        if taxon_id in wanted
    }
    return alns_by_taxon, taxa_by_aln


def select_alignments(
    exemplars: Sequence[str],
    alignments_for_taxon: Mapping[str, Sequence[str]],
    taxa_for_alignment: Mapping[str, Sequence[str]],
    *,
    min_coverage: int,
) -> CoverageSelection:
    """Greedily pick just enough alignments to give every exemplar `min_coverage`.

    Rarest exemplars go first; each takes its not yet selected alignments in
    order of how many exemplars they cover. Coverage counters are local to
    the returned selection.
    """

    alns_by_taxon, taxa_by_aln = restrict_to_exemplars(exemplars, alignments_for_taxon, taxa_for_alignment)
    selection = CoverageSelection()

    for taxon_id in exemplars:
        if not alns_by_taxon.get(taxon_id):
            logger.warning("No data for exemplar %s, skipping", taxon_id)
            selection.skipped_exemplars.append(taxon_id)

    def _aln_order(name: str) -> tuple:
        return (-len(taxa_by_aln[name]), name)

    ordered_alns = {
        taxon_id: sorted(names, key=_aln_order)
        for taxon_id, names in alns_by_taxon.items()
        if names
    }
    selection.ordered_exemplars = sorted(
        ordered_alns,
        key=lambda taxon_id: (len(ordered_alns[taxon_id]), exemplars.index(taxon_id)),
    )

    selected: dict[str, None] = {}
    coverage = selection.coverage
    for taxon_id in selection.ordered_exemplars:
        logger.debug("Checking alignment coverage for taxon %s", taxon_id)
        remaining = [name for name in ordered_alns[taxon_id] if name not in selected]
        coverage.setdefault(taxon_id, 0)
        while coverage[taxon_id] < min_coverage:
            if not remaining:
                raise CoverageInvariantError(
                    f"No alignment left for exemplar {taxon_id}: coverage {coverage[taxon_id]} < {min_coverage}"
                )
            name = remaining.pop(0)
            selected[name] = None
            for member in taxa_by_aln[name]:
                coverage[member] = coverage.get(member, 0) + 1

    selection.alignments = sorted(selected, key=natural_key)
    logger.info(
        "Using %d alignments for %d exemplars",
        len(selection.alignments),
        len(selection.ordered_exemplars),
    )
    return selection
