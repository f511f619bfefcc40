"""Concept graph: extraction, merging, community detection and retrieval.

Documents are reduced to frequency-ranked concepts (or LLM entities when
enrichment is on) and merged into one shared graph. Extraction is
deterministic by default so it works offline.
"""
