"""
Model of a service account dockercfg secret as seen in a watch event.

Only the metadata the reconciler needs is kept: identity, secret type and the
annotations linking the secret to its service account and token secret.
"""

from typing import Any

from pydantic import BaseModel, Field

from ..constants import (
    SERVICE_ACCOUNT_NAME_ANNOTATION,
    SERVICE_ACCOUNT_UID_ANNOTATION,
    TOKEN_SECRET_NAME_ANNOTATION,
)


class DockercfgSecret(BaseModel):
    """
    Snapshot of a dockercfg secret at the time it was deleted.

    The annotations are read as they existed at deletion time; the secret
    itself no longer exists when the reconciler sees this object.
    """

    model_config = {"populate_by_name": True, "frozen": True}

    name: str = Field(..., description="Name of the secret")
    namespace: str = Field(..., description="Namespace of the secret")
    uid: str = Field("", description="UID of the deleted secret")
    type: str = Field("", description="Secret type")
    annotations: dict[str, str] = Field(
        default_factory=dict, description="Annotations at deletion time"
    )

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "DockercfgSecret":
        """
        Build the model from a raw Secret body as delivered by the watch.

        Args:
            body: Secret object dictionary (``metadata``, ``type``, ...)

        Returns:
            DockercfgSecret snapshot
        """
        metadata = body.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            uid=metadata.get("uid") or "",
            type=body.get("type") or "",
            annotations=metadata.get("annotations") or {},
        )

    @property
    def service_account_name(self) -> str:
        return self.annotations.get(SERVICE_ACCOUNT_NAME_ANNOTATION, "")

    @property
    def service_account_uid(self) -> str:
        return self.annotations.get(SERVICE_ACCOUNT_UID_ANNOTATION, "")

    @property
    def token_secret_name(self) -> str:
        return self.annotations.get(TOKEN_SECRET_NAME_ANNOTATION, "")

    @property
    def is_managed(self) -> bool:
        """Whether the secret was generated alongside a token secret."""
        return TOKEN_SECRET_NAME_ANNOTATION in self.annotations

    @property
    def has_service_account_reference(self) -> bool:
        """Whether both service account back-reference annotations are set."""
        return bool(self.service_account_name and self.service_account_uid)
