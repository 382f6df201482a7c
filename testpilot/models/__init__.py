"""Data models shared across the dashboard server."""
