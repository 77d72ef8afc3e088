"""
Maifead feed ingestion and normalization engine.
"""

__version__ = "0.1.0"
