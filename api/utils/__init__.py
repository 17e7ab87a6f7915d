# RoloDex AI API Utilities
"""
Shared utility functions for RoloDex AI services.
"""

from api.utils.datetime_utils import make_aware, parse_iso_datetime, format_note_date

__all__ = ["make_aware", "parse_iso_datetime", "format_note_date"]
