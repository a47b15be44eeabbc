"""External tool runner adapters."""

from orthomatrix.runners.blast import BlastnRunner, MakeBlastDbRunner
from orthomatrix.runners.muscle import MuscleRunner

__all__ = [
    "BlastnRunner",
    "MakeBlastDbRunner",
    "MuscleRunner",
]
