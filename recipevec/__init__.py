"""
Top-level package for the recipe semantic vector store.

This package contains modules for downloading and parsing public recipe
corpora, normalizing and de-duplicating them into one canonical record
set, embedding every record in batches, writing the flat vector store
consumed by brute-force cosine search, and serving query embeddings
from the same model at runtime.  There are no side-effects on import and
each module can be executed as a script for ad-hoc debugging.
"""
from __future__ import annotations
