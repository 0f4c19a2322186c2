"""Client for the theatre listing API."""
