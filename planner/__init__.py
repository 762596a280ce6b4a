"""Planned-transaction engine: recurrence, occurrence merging and matching."""
