from treeindex.engine.core import Diagnostic, DiagnosticKind, HierarchyIndex, Record, RecordId
from treeindex.engine.persistence import load_index, load_records, parse_records, save_records

__all__ = [
    "Diagnostic",
    "DiagnosticKind",
    "HierarchyIndex",
    "Record",
    "RecordId",
    "load_index",
    "load_records",
    "parse_records",
    "save_records",
]
