"""Completion provider clients."""
