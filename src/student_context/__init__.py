"""
Student Context Retrieval

Builds budgeted, per-student data contexts from free-text questions using async
record-store reads, rule-based query interpretation, and derived school metrics.
"""

__version__ = "0.1.0"
