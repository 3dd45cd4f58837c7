"""
Constants used throughout the dockercfg operator.

This module defines all constant values used by the operator including:
- Secret types and field selectors for the watched secrets
- Annotation keys linking dockercfg secrets to service accounts and tokens
- Default retry and resync values
"""

# Secret type of the watched (secondary) resources
SECRET_TYPE_DOCKERCFG = "kubernetes.io/dockercfg"
SECRET_TYPE_FIELD = "type"

# Annotations recorded on a dockercfg secret by the provisioning controller
SERVICE_ACCOUNT_NAME_ANNOTATION = "kubernetes.io/service-account.name"
SERVICE_ACCOUNT_UID_ANNOTATION = "kubernetes.io/service-account.uid"
TOKEN_SECRET_NAME_ANNOTATION = "openshift.io/token-secret.name"

# Watch event type
EVENT_DELETED = "DELETED"

# Resource type names used in logs and metrics
RESOURCE_DOCKERCFG_SECRET = "dockercfg_secret"
RESOURCE_SERVICE_ACCOUNT = "service_account"

# Conflict retry defaults for service account updates
DEFAULT_UPDATE_MAX_ATTEMPTS = 10
DEFAULT_UPDATE_JITTER_MAX_SECONDS = 0.1

# Resync interval (0 = never force a re-list)
DEFAULT_RESYNC_SECONDS = 0

# Time allowed for the watch loop to exit before it is cancelled
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 10.0

# Operator identification
OPERATOR_NAME = "dockercfg-operator"
