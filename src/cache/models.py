# src/cache/models.py - v1
"""Cache domain models: CacheVolume, VolumeInfo, VolumeEnsureResult and label keys."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from podci.core.errors import VolumeOwnershipWarning

LABEL_MANAGED = "podci.managed"
LABEL_NAMESPACE = "podci.namespace"
LABEL_ENV_ID = "podci.env_id"
LABEL_VOLUME_KIND = "podci.volume_kind"

MANAGED_LABELS = (LABEL_MANAGED, LABEL_NAMESPACE, LABEL_ENV_ID, LABEL_VOLUME_KIND)


class VolumeInfo(BaseModel):
    """What the engine reports about one volume."""

    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    created_at: datetime | None = None

    def is_managed(self) -> bool:
        """True when the complete podci label set is present."""
        return self.labels.get(LABEL_MANAGED) == "true" and all(
            self.labels.get(key) for key in MANAGED_LABELS
        )


class CacheVolume(BaseModel):
    """A podci-owned cache volume identified by (namespace, env_id, kind)."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    env_id: str
    kind: str
    mount_path: str | None = None
    created_at: datetime | None = None

    def labels(self) -> dict[str, str]:
        return {
            LABEL_MANAGED: "true",
            LABEL_NAMESPACE: self.namespace,
            LABEL_ENV_ID: self.env_id,
            LABEL_VOLUME_KIND: self.kind,
        }


class VolumeEnsureResult(BaseModel):
    """Volumes ready for mounting, plus any ownership warnings raised on the way."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    volumes: list[CacheVolume] = Field(default_factory=list)
    warnings: list[VolumeOwnershipWarning] = Field(default_factory=list)
    created: list[str] = Field(default_factory=list)
