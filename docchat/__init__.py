"""
DocChat - conversational question answering over a document corpus.

Two decoupled pipelines share one vector index: ingestion (chunk, embed,
upsert) and query (rewrite, retrieve, assemble context, generate).
"""

__version__ = "1.0.0"
__author__ = "DocChat Team"
