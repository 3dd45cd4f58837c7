"""
Tests package for the dockercfg operator.

Contains:
- unit/: Unit tests for individual components
- fixtures/: In-memory Kubernetes resources and stores
"""
