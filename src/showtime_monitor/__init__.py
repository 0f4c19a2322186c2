"""Showtime monitor: watches a theatre listing API for new showtimes."""

__version__ = "1.0.0"
