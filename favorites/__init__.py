"""Saved stories: local favorites repository with multi-format export."""
