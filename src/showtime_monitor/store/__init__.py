"""SQLite persistence for theatres, movies, showtimes and bot state."""
