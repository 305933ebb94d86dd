"""Streaming tar archive handling.

This package contains:
- reader: ArchiveReader and Entry, a forward-only reader keeping the raw header bytes of every entry
- rewriter: ArchiveRewriter, which copies entries verbatim or replaces them by hard link headers
"""
