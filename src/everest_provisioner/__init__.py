"""Everest provisioner: installs Percona operators on Kubernetes through OLM."""

__version__ = "0.1.0"
