"""
Dockercfg Operator - Kubernetes controller that cleans up after deleted
service account dockercfg secrets.

When a dockercfg pull secret generated for a service account is deleted, the
operator:
- Removes the dangling secret and image pull secret references from the
  owning service account
- Deletes the service account token secret that backed the dockercfg secret
"""

__version__ = "0.1.0"
