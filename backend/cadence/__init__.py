"""Cadence Coach backend: retention scheduling and adaptive coaching."""
