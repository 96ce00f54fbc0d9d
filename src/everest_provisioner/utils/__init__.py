"""Shared utilities for everest-provisioner."""
