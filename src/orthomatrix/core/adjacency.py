from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from orthomatrix.core.fasta import Alignment
from orthomatrix.core.ids import natural_key, natural_sorted
from orthomatrix.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class AdjacencyGraph:
    """Taxa linked by the number of alignments they share."""

    edges: dict[str, dict[str, int]] = field(default_factory=dict)
    alignments_for_taxon: dict[str, list[str]] = field(default_factory=dict)
    taxa_for_alignment: dict[str, list[str]] = field(default_factory=dict)

    def coverage(self, taxon_id: str) -> int:
        return len(self.alignments_for_taxon.get(taxon_id, ()))

    def weight(self, left: str, right: str) -> int:
        return self.edges.get(left, {}).get(right, 0)

    def neighbors(self, taxon_id: str) -> list[str]:
        return [other for other, weight in self.edges.get(taxon_id, {}).items() if weight > 0]


def build_adjacency(alignments: Iterable[Alignment], *, known_taxa: Iterable[str] | None = None) -> AdjacencyGraph:
    """Count co-occurrences of taxa across alignments (self loops excluded).

    When `known_taxa` is given, taxa outside that set are ignored.
    """

    allowed = set(known_taxa) if known_taxa is not None else None
    graph = AdjacencyGraph()
    if allowed is not None:
        for taxon_id in allowed:
            graph.edges[taxon_id] = {}

    ignored: set[str] = set()
    for alignment in alignments:
        taxa = alignment.taxa()
        if allowed is not None:
            ignored.update(taxon_id for taxon_id in taxa if taxon_id not in allowed)
            taxa = [taxon_id for taxon_id in taxa if taxon_id in allowed]
        graph.taxa_for_alignment[alignment.name] = taxa

        for left in taxa:
            graph.alignments_for_taxon.setdefault(left, []).append(alignment.name)
            row = graph.edges.setdefault(left, {})
            for right in taxa:
                if right == left:
                    continue
                row[right] = row.get(right, 0) + 1

    if ignored:
        logger.info("Ignored %d taxa that are not in the taxa table", len(ignored))
    return graph


def prune_low_coverage(graph: AdjacencyGraph, min_coverage: int) -> AdjacencyGraph:
    """Working copy without taxa that occur in fewer than `min_coverage` alignments."""

    removed = {taxon_id for taxon_id in graph.edges if graph.coverage(taxon_id) < min_coverage}
    for taxon_id in natural_sorted(removed):
        logger.debug("Taxon %s occurs in %d alignments, below minimum coverage", taxon_id, graph.coverage(taxon_id))
    logger.info("Removed %d taxa with coverage below %d", len(removed), min_coverage)

    edges = {
        taxon_id: {other: weight for other, weight in row.items() if other not in removed}
        for taxon_id, row in graph.edges.items()
        if taxon_id not in removed
    }
    return AdjacencyGraph(
        edges=edges,
        alignments_for_taxon={
            taxon_id: list(names) for taxon_id, names in graph.alignments_for_taxon.items()
        },
        taxa_for_alignment={name: list(taxa) for name, taxa in graph.taxa_for_alignment.items()},
    )


def connected_components(edges: Mapping[str, Mapping[str, int]]) -> list[list[str]]:
    """Breadth-first components over nonzero edges, largest first."""

    adjacency: dict[str, set[str]] = {node: set() for node in edges}
    for node, row in edges.items():
        for other, weight in row.items():
            if weight <= 0 or other == node or other not in adjacency:
                continue
            adjacency[node].add(other)
            adjacency[other].add(node)

    visited: set[str] = set()
    components: list[list[str]] = []

    for seed in natural_sorted(adjacency):
        if seed in visited:
            continue

        queue: deque[str] = deque([seed])
        visited.add(seed)
        component: list[str] = []

        while queue:
            current = queue.popleft()
            component.append(current)
            for neighbor in natural_sorted(adjacency[current]):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        components.append(natural_sorted(component))

    components.sort(key=lambda comp: (-len(comp), natural_key(comp[0])))
    return components


def candidate_pool(graph: AdjacencyGraph, min_coverage: int) -> tuple[AdjacencyGraph, list[list[str]]]:
    """Prune by coverage and return the working graph with all its components.

    The first component is the exemplar candidate pool.
    """

    pruned = prune_low_coverage(graph, min_coverage)
    components = connected_components(pruned.edges)
    if components:
        logger.info(
            "Found %d connected taxon subsets; largest has %d taxa",
            len(components),
            len(components[0]),
        )
    else:
        logger.warning("No taxa left after coverage filtering")
    return pruned, components
