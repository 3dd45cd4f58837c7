"""
Kopf handler registration for the dockercfg operator.

Handlers are registered on an explicit registry owned by the controller
rather than on kopf's global registry, so a controller can be started and
stopped independently of module imports.
"""

from .secrets import handle_secret_event, register_secret_handlers

__all__ = ["handle_secret_event", "register_secret_handlers"]
