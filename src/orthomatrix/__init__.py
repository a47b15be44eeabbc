"""OrthoMatrix: orthology merging and exemplar supermatrix assembly."""

__version__ = "0.1.0"
