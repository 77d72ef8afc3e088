"""
Services layer for Maifead.

- content.py: shared text/markup helpers used by every source adapter
- data_ingestion/: HTTP, feed parsing, filtering, the refresh pipeline,
  retention and scheduling
"""
