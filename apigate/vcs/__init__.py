"""
Version control: Fetch the source trees of two revisions.

Components:
    - RevisionRetriever: Opens or clones a git repository (pygit2) and
      writes revisions into temporary directories
"""

from apigate.vcs.retriever import RevisionRetriever

__all__ = ["RevisionRetriever"]
