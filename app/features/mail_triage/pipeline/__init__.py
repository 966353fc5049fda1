"""
Pipeline components for mail triage.

Classification decides what a message is; extraction turns job mail into a
record and submits it.
"""

__all__ = ["classification", "extraction"]
