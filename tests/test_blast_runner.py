from __future__ import annotations

from pathlib import Path

from orthomatrix.core.similarity import BlastSimilaritySearch
from orthomatrix.runners.blast import BlastnRunner, MakeBlastDbRunner
from orthomatrix.runners.muscle import MuscleRunner
from orthomatrix.utils.subprocess import CommandResult


def test_blast_search_builds_db_and_parses_tabular_report(monkeypatch) -> None:
    calls: list[list[str]] = []

    def _fake_run(self, args, **kwargs):  # type: ignore[no-untyped-def]
        calls.append([self.executable, *[str(arg) for arg in args]])
        stdout = "1\t2\t1\t80\t1\t80\t100\t100\n" if self.executable == "blastn" else ""
        return CommandResult(command=[self.executable], returncode=0, stdout=stdout, stderr="", dry_run=False)

    monkeypatch.setattr(MakeBlastDbRunner, "run", _fake_run)
    monkeypatch.setattr(BlastnRunner, "run", _fake_run)

    search = BlastSimilaritySearch(makeblastdb=MakeBlastDbRunner(), blastn=BlastnRunner(), threads=4)
    hsps = search.search(seeds_fasta=Path("seeds.fa"), sequences={"1": "A" * 100, "2": "A" * 100})

    assert calls[0] == ["makeblastdb", "-in", "seeds.fa", "-dbtype", "nucl"]
    assert calls[1][0] == "blastn"
    assert "-outfmt" in calls[1]
    assert calls[1][calls[1].index("-num_threads") + 1] == "4"
    assert len(hsps) == 1
    assert hsps[0].query_span == 80


def test_muscle_profile_arguments(monkeypatch) -> None:
    captured: dict[str, object] = {}

    def _fake_run(self, args, **kwargs):  # type: ignore[no-untyped-def]
        captured["args"] = [str(arg) for arg in args]
        return CommandResult(command=["muscle"], returncode=0, stdout=">x\nA\n", stderr="", dry_run=False)

    monkeypatch.setattr(MuscleRunner, "run", _fake_run)

    result = MuscleRunner(timeout=30).profile(in1=Path("a.fa"), in2=Path("b.fa"))

    assert captured["args"] == ["-profile", "-in1", "a.fa", "-in2", "b.fa", "-quiet"]
    assert result.stdout == ">x\nA\n"
