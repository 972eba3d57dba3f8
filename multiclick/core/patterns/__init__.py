"""Reusable patterns: transport state machine and event subject."""
