"""
Utility modules for the availability engine.

This package contains shared utility functions and helpers used across
the application, including datetime utilities and interval algebra.
"""

from utils.intervals import coalesce_spans, overlaps, subtract_intervals

__all__ = ['coalesce_spans', 'overlaps', 'subtract_intervals']
