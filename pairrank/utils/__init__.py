"""Debugging utilities for pairrank layers."""
