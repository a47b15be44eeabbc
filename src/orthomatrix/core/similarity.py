from __future__ import annotations

from dataclasses import dataclass
from difflib import SequenceMatcher
from pathlib import Path
from typing import Iterable, Mapping, Protocol

from orthomatrix.core.fasta import FastaRecord, write_fasta_records
from orthomatrix.core.ids import natural_sorted
from orthomatrix.core.sequences import SequenceStore
from orthomatrix.exceptions import EmptySimilarityReportError
from orthomatrix.logging import get_logger
from orthomatrix.runners.blast import BlastnRunner, MakeBlastDbRunner

logger = get_logger(__name__)

DEFAULT_OVERLAP_THRESHOLD = 0.51

HitGraph = dict[str, frozenset[str]]


@dataclass(frozen=True, slots=True)
class Hsp:
    """One matching region between a query and a hit sequence."""

    query_id: str
    hit_id: str
    query_span: int
    hit_span: int


@dataclass(frozen=True, slots=True)
class SimilarityHit:
    query_id: str
    hit_id: str
    query_covered: int
    hit_covered: int
    query_length: int
    hit_length: int

    @property
    def query_fraction(self) -> float:
        return self.query_covered / float(self.query_length) if self.query_length else 0.0

    @property
    def hit_fraction(self) -> float:
        return self.hit_covered / float(self.hit_length) if self.hit_length else 0.0

    def passes(self, threshold: float) -> bool:
        return self.query_fraction > threshold and self.hit_fraction > threshold


class SimilaritySearch(Protocol):
    def search(self, *, seeds_fasta: Path, sequences: Mapping[str, str]) -> list[Hsp]: ...


def parse_blast_tabular(stdout: str) -> list[Hsp]:
    """Parse `qseqid sseqid qstart qend sstart send ...` rows into HSPs."""

    hsps: list[Hsp] = []
    for raw_line in stdout.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        fields = line.split("\t")
        if len(fields) < 6:
            logger.debug("Skipping malformed BLAST row: %s", line)
            continue

        try:
            qstart, qend, sstart, send = (int(value) for value in fields[2:6])
        except ValueError:
            logger.debug("Skipping BLAST row with non-integer coordinates: %s", line)
            continue

        hsps.append(
            Hsp(
                query_id=fields[0],
                hit_id=fields[1],
                query_span=abs(qend - qstart) + 1,
                hit_span=abs(send - sstart) + 1,
            )
        )
    return hsps


class BlastSimilaritySearch:
    """All-vs-all BLASTN search against a database built from the seeds themselves."""

    def __init__(
        self,
        *,
        makeblastdb: MakeBlastDbRunner,
        blastn: BlastnRunner,
        threads: int = 1,
    ) -> None:
        self.makeblastdb = makeblastdb
        self.blastn = blastn
        self.threads = threads

    def search(self, *, seeds_fasta: Path, sequences: Mapping[str, str]) -> list[Hsp]:
        logger.info("Running all-vs-all BLAST search on %s", seeds_fasta)
        self.makeblastdb.make_db(input_fasta=seeds_fasta)
        result = self.blastn.search(query=seeds_fasta, database=seeds_fasta, threads=self.threads)
        return parse_blast_tabular(result.stdout)


class LocalSimilaritySearch:
    """In-process stand-in for BLAST that reports exact matching blocks as HSPs.

    Blocks shorter than `word_size` are ignored, mirroring BLAST's seed length.
    """

    def __init__(self, *, word_size: int = 11) -> None:
        self.word_size = word_size

    def search(self, *, seeds_fasta: Path, sequences: Mapping[str, str]) -> list[Hsp]:
        hsps: list[Hsp] = []
        seed_ids = natural_sorted(sequences)
        for query_id in seed_ids:
            query = sequences[query_id].upper()
            for hit_id in seed_ids:
                hit = sequences[hit_id].upper()
                matcher = SequenceMatcher(None, query, hit, autojunk=False)
                for block in matcher.get_matching_blocks():
                    if block.size < self.word_size:
                        continue
                    hsps.append(
                        Hsp(query_id=query_id, hit_id=hit_id, query_span=block.size, hit_span=block.size)
                    )
        return hsps


def aggregate_hits(hsps: Iterable[Hsp], lengths: Mapping[str, int]) -> list[SimilarityHit]:
    """Sum HSP spans per ordered (query, hit) pair."""

    totals: dict[tuple[str, str], list[int]] = {}
    for hsp in hsps:
        if hsp.query_id not in lengths or hsp.hit_id not in lengths:
            logger.warning("Similarity report names unknown sequence: %s / %s", hsp.query_id, hsp.hit_id)
            continue
        spans = totals.setdefault((hsp.query_id, hsp.hit_id), [0, 0])
        spans[0] += hsp.query_span
        spans[1] += hsp.hit_span

    return [
        SimilarityHit(
            query_id=query_id,
            hit_id=hit_id,
            query_covered=spans[0],
            hit_covered=spans[1],
            query_length=lengths[query_id],
            hit_length=lengths[hit_id],
        )
        for (query_id, hit_id), spans in totals.items()
    ]


def build_hit_graph(
    hits: Iterable[SimilarityHit],
    *,
    seed_ids: Iterable[str] = (),
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> HitGraph:
    """Map every seed to the seeds it overlaps reciprocally above the threshold."""

    graph: dict[str, set[str]] = {seed_id: set() for seed_id in seed_ids}
    for hit in hits:
        graph.setdefault(hit.query_id, set())
        if hit.passes(overlap_threshold):
            graph[hit.query_id].add(hit.hit_id)
        else:
            logger.debug(
                "Discarding hit %s -> %s (coverage %.3f / %.3f)",
                hit.query_id,
                hit.hit_id,
                hit.query_fraction,
                hit.hit_fraction,
            )
    return {seed_id: frozenset(members) for seed_id, members in graph.items()}


def build_similarity_graph(
    seed_ids: Iterable[str],
    *,
    store: SequenceStore,
    search: SimilaritySearch,
    seeds_fasta: Path,
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> tuple[HitGraph, list[str]]:
    """Run the all-vs-all search over distinct seeds and derive the hit graph.

    Returns the graph and the seeds whose sequence could not be looked up.
    """

    sequences: dict[str, str] = {}
    missing: list[str] = []
    for seed_id in natural_sorted(set(seed_ids)):
        record = store.get(seed_id)
        if record is None or not record.sequence:
            logger.warning("No sequence found for seed %s; it will form its own cluster", seed_id)
            missing.append(seed_id)
            continue
        sequences[seed_id] = record.sequence

    if not sequences:
        return {}, missing

    write_fasta_records(
        seeds_fasta,
        [FastaRecord(header=seed_id, sequence=sequence) for seed_id, sequence in sequences.items()],
        force=True,
    )
    logger.info("Wrote %d distinct seed sequences to %s", len(sequences), seeds_fasta)

    hsps = search.search(seeds_fasta=seeds_fasta, sequences=sequences)
    if not hsps:
        raise EmptySimilarityReportError(
            f"Similarity search returned no results for {len(sequences)} seed sequences"
        )

    lengths = {seed_id: len(sequence) for seed_id, sequence in sequences.items()}
    hits = aggregate_hits(hsps, lengths)
    logger.info("Number of similarity results: %d", len(hits))

    graph = build_hit_graph(hits, seed_ids=sequences, overlap_threshold=overlap_threshold)
    retained = sum(len(members) for members in graph.values())
    logger.info("Retained %d hits with reciprocal overlap > %.2f", retained, overlap_threshold)
    return graph, missing
