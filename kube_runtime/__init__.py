"""Kubernetes runtime: run services and manage namespaces and network policies."""
