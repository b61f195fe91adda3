"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Source loading and HTML to text conversion
- Word-window chunking with overlap
- The in-memory vector store and its JSON snapshots
- Cosine similarity search
- Ingestion and grounded answering
"""
