"""Outbound notifications for trade events."""
