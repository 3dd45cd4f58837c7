"""Utility modules for the dockercfg operator."""
