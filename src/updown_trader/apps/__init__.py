"""Applications built on the core primitives."""
