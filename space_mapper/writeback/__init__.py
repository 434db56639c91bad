"""
Writeback of resolved zone values onto targets.
"""

from .writeback import WritebackService, apply_write_mode, combine_values, format_number

__all__ = ["WritebackService", "apply_write_mode", "combine_values", "format_number"]
