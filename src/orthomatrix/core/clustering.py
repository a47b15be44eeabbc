from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

from orthomatrix.core.ids import assign_integer_ids, canonical_key, natural_key, natural_sorted
from orthomatrix.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class OrthologousCluster:
    cluster_id: int
    seed_ids: tuple[str, ...]

    @property
    def key(self) -> str:
        return "|".join(self.seed_ids)

    def __len__(self) -> int:
        return len(self.seed_ids)


@dataclass(frozen=True, slots=True)
class Unvisited:
    pass


@dataclass(frozen=True, slots=True)
class InCluster:
    component: int


SeedState = Union[Unvisited, InCluster]
UNVISITED = Unvisited()


def _undirected_neighbors(hit_graph: Mapping[str, Iterable[str]]) -> dict[str, set[str]]:
    neighbors: dict[str, set[str]] = defaultdict(set)
    for query_id, hit_ids in hit_graph.items():
        neighbors[query_id]
        for hit_id in hit_ids:
            if hit_id == query_id:
                neighbors[hit_id]
                continue
            neighbors[query_id].add(hit_id)
            neighbors[hit_id].add(query_id)
    return neighbors


def single_linkage_clusters(
    hit_graph: Mapping[str, Iterable[str]],
    *,
    extra_seeds: Iterable[str] = (),
) -> list[OrthologousCluster]:
    """Group seeds transitively linked by any retained hit.

    The hit graph is never mutated; traversal state lives in a separate map of
    `Unvisited | InCluster` per seed. Seeds in `extra_seeds` that do not occur
    in the graph become singleton clusters. Cluster ids follow the ascending
    order of each cluster's sorted member list.
    """

    neighbors = _undirected_neighbors(hit_graph)
    for seed_id in extra_seeds:
        neighbors[seed_id]

    state: dict[str, SeedState] = {seed_id: UNVISITED for seed_id in neighbors}
    components: list[list[str]] = []

    for start in natural_sorted(neighbors):
        if not isinstance(state[start], Unvisited):
            continue

        component_idx = len(components)
        members: list[str] = []
        stack = [start]
        state[start] = InCluster(component_idx)
        while stack:
            current = stack.pop()
            members.append(current)
            for neighbor in sorted(neighbors[current], key=natural_key, reverse=True):
                if isinstance(state[neighbor], Unvisited):
                    state[neighbor] = InCluster(component_idx)
                    stack.append(neighbor)

        logger.debug("Clustered %d seeds around seed %s", len(members), start)
        components.append(members)

    unique = {canonical_key(members): members for members in components}
    ids = assign_integer_ids(unique)

    clusters = [
        OrthologousCluster(cluster_id=ids[key], seed_ids=tuple(natural_sorted(set(members))))
        for key, members in unique.items()
    ]
    clusters.sort(key=lambda cluster: cluster.cluster_id)

    singletons = sum(1 for cluster in clusters if len(cluster) == 1)
    logger.info("Built %d orthologous clusters (%d singletons)", len(clusters), singletons)
    return clusters
