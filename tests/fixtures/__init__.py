"""Test fixtures for Kubernetes resources."""
