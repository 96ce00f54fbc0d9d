"""Kubernetes client layer."""
