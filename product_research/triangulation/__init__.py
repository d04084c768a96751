from .consensus import ConsensusMerger, MergeOutcome, union_printers

__all__ = ["ConsensusMerger", "MergeOutcome", "union_printers"]
