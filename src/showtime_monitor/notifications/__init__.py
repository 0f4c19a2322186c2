"""Notification formatting and delivery."""
