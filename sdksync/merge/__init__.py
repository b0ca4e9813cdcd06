"""Tree diffing and staged application of generated output."""

from .merger import MergePlan, TreeMerger
from .tree import DirectoryTree, MemoryTree, VirtualTree

__all__ = ["DirectoryTree", "MemoryTree", "MergePlan", "TreeMerger", "VirtualTree"]
