from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from itertools import combinations
from typing import Iterable, Mapping, Sequence

from orthomatrix.core.adjacency import AdjacencyGraph
from orthomatrix.core.distance import DEFAULT_MISSING_CHARS, mean_distance_between
from orthomatrix.core.fasta import Alignment
from orthomatrix.core.ids import natural_key, natural_sorted, pair_key
from orthomatrix.core.taxa import TaxaTable
from orthomatrix.logging import get_logger
from orthomatrix.parallel import ParallelService, SequentialService

logger = get_logger(__name__)

# genus -> one (monotypic) or two exemplar taxon ids
ExemplarSet = dict[str, list[str]]

MIN_SPECIES_FOR_DISTANCES = 3


@dataclass(frozen=True, slots=True)
class GenusCandidates:
    genus: str
    candidates: tuple[str, ...]
    connected: tuple[str, ...]


def genus_candidates(
    genus: str,
    members: Iterable[str],
    pool: Iterable[str],
    graph: AdjacencyGraph,
) -> GenusCandidates:
    """Genus members in the pool, and those linked to another candidate of the genus."""

    pool_set = set(pool)
    candidates = natural_sorted(member for member in set(members) if member in pool_set)
    connected = [
        taxon_id
        for taxon_id in candidates
        if any(other != taxon_id and graph.weight(taxon_id, other) > 0 for other in candidates)
    ]
    return GenusCandidates(genus=genus, candidates=tuple(candidates), connected=tuple(connected))


def alignment_pair_distances(
    alignment: Alignment,
    taxa: Sequence[str],
    *,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> dict[tuple[str, str], float] | None:
    """Mean divergence between every pair of `taxa` that have data in `alignment`.

    Returns None when fewer than three of the taxa are present.
    """

    sequences = {taxon_id: alignment.sequences_for_taxon(taxon_id) for taxon_id in taxa}
    sequences = {taxon_id: seqs for taxon_id, seqs in sequences.items() if seqs}
    if len(sequences) < MIN_SPECIES_FOR_DISTANCES:
        logger.debug("Fewer than %d species in %s, no distance calculated", MIN_SPECIES_FOR_DISTANCES, alignment.name)
        return None

    distances: dict[tuple[str, str], float] = {}
    for left, right in combinations(natural_sorted(sequences), 2):
        distance = mean_distance_between(sequences[left], sequences[right], missing_chars=missing_chars)
        if distance is not None:
            distances[pair_key(left, right)] = distance
    return distances


def score_divergent_pairs(
    alignments: Iterable[Alignment],
    taxa: Sequence[str],
    *,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> dict[tuple[str, str], int]:
    """Credit the most divergent pair of each alignment with `pairs - 1` points."""

    scores: dict[tuple[str, str], int] = {}
    for alignment in sorted(alignments, key=lambda aln: aln.name):
        distances = alignment_pair_distances(alignment, taxa, missing_chars=missing_chars)
        if not distances:
            continue
        farthest = min(
            distances,
            key=lambda pair: (-distances[pair], natural_key(pair[0]), natural_key(pair[1])),
        )
        scores[farthest] = scores.get(farthest, 0) + len(distances) - 1
    return scores


def _strongest_pair(taxa: Sequence[str], graph: AdjacencyGraph) -> list[str]:
    pairs = list(combinations(natural_sorted(taxa), 2))
    best = min(pairs, key=lambda pair: (-graph.weight(*pair), natural_key(pair[0]), natural_key(pair[1])))
    return list(best)


def choose_exemplars(
    group: GenusCandidates,
    *,
    alignments: Sequence[Alignment],
    graph: AdjacencyGraph,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> tuple[str, list[str]]:
    """Pick at most two exemplar taxa for one genus; an empty list drops the genus."""

    genus = group.genus
    if not group.candidates:
        logger.info("Genus %s has no taxa in the candidate pool, no exemplars", genus)
        return genus, []

    if len(group.connected) < 2:
        chosen = group.connected[0] if group.connected else group.candidates[0]
        logger.info("Added taxon %s as (monotypic) exemplar for genus %s", chosen, genus)
        return genus, [chosen]

    if len(group.connected) == 2:
        logger.info("Added taxa %s as exemplars for genus %s", ",".join(group.connected), genus)
        return genus, list(group.connected)

    logger.info(
        "Genus %s has %d connected candidates, choosing the most distant pair",
        genus,
        len(group.connected),
    )
    scores = score_divergent_pairs(alignments, group.connected, missing_chars=missing_chars)
    if scores:
        best = min(scores, key=lambda pair: (-scores[pair], natural_key(pair[0]), natural_key(pair[1])))
        logger.info("Added taxa %s,%s as exemplars for genus %s (score %d)", best[0], best[1], genus, scores[best])
        return genus, list(best)

    chosen = _strongest_pair(group.connected, graph)
    logger.warning(
        "Could not compute distances for genus %s, using best connected taxa %s",
        genus,
        ",".join(chosen),
    )
    return genus, chosen


def select_exemplars(
    taxa_table: TaxaTable,
    graph: AdjacencyGraph,
    pool: Iterable[str],
    alignments: Sequence[Alignment],
    *,
    service: ParallelService | None = None,
    missing_chars: str = DEFAULT_MISSING_CHARS,
) -> ExemplarSet:
    """Choose exemplar taxa per genus from the candidate pool.

    Genera are processed independently through `service`; genera without any
    exemplar are left out of the result.
    """

    service = service or SequentialService()
    pool = list(pool)
    groups = [
        genus_candidates(genus, members, pool, graph)
        for genus, members in taxa_table.taxa_for_genus().items()
    ]
    logger.info("Selecting exemplars for %d genera with %d workers", len(groups), service.worker_count())

    worker = partial(choose_exemplars, alignments=alignments, graph=graph, missing_chars=missing_chars)
    results = service.parallel_map(worker, groups)

    exemplars: ExemplarSet = {}
    for genus, chosen in sorted(results, key=lambda item: natural_key(item[0])):
        if chosen:
            exemplars[genus] = chosen

    total = sum(len(chosen) for chosen in exemplars.values())
    logger.info("Identified %d exemplars in %d genera", total, len(exemplars))
    return exemplars


def exemplar_taxa(exemplars: Mapping[str, Sequence[str]]) -> list[str]:
    """Flatten an exemplar set in genus order."""

    flat: dict[str, None] = {}
    for genus in sorted(exemplars, key=natural_key):
        for taxon_id in exemplars[genus]:
            flat.setdefault(taxon_id, None)
    return list(flat)
