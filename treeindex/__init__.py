"""Treeindex: an in-memory forest of parent-linked records with cached traversals."""

__version__ = "0.1.0"

from treeindex.client import Forest
from treeindex.engine.core import Diagnostic, DiagnosticKind, HierarchyIndex
from treeindex.models import IndexStats, Record, TreeRow, ValidationResult

__all__ = [
    "Diagnostic",
    "DiagnosticKind",
    "Forest",
    "HierarchyIndex",
    "IndexStats",
    "Record",
    "TreeRow",
    "ValidationResult",
    "__version__",
]
