"""Command-line helpers for inspecting stored monitoring events."""
