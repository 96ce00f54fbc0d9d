"""Bundled Kubernetes manifests, read with :func:`everest_provisioner.manifests.read_manifest`."""
