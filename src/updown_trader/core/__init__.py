"""Shared primitives: enums, decimal constants, configuration and time helpers."""
