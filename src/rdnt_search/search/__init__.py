"""
Search indexing and query engine package.

This package provides the pure-Python search stack:
- analyzers: Markup stripping, tokenizer and token filters
- models: Document, posting and metadata records
- index: In-memory inverted index with positional postings
- persistence: Index blob serialization and the on-disk store
- query: Query grammar and filter matching
- snippet: Result preview extraction
- engine: Scoring, ranking, suggestions and similar-document lookup
"""
