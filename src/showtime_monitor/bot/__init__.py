"""Telegram channel and bot commands."""
