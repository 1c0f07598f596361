"""Branch directory clients."""

from .branch_directory import BranchDirectory, HttpBranchDirectory, InMemoryBranchDirectory

__all__ = ["BranchDirectory", "HttpBranchDirectory", "InMemoryBranchDirectory"]
