"""Data models for the concierge workflow."""
