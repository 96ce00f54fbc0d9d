"""Operator Lifecycle Manager orchestration."""
