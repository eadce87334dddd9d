"""Durable SQL log of every trade event."""
