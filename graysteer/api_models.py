from __future__ import annotations

from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class FilterConfig(BaseModel):
    """Per-route configuration block attached to the request by the host."""

    model_config = ConfigDict(extra="ignore")

    upstream_id: str = Field(..., min_length=1, description="Upstream to inspect for gray instances")


class UpstreamNode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host: str
    port: Union[int, str]


class UpstreamValue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    service_name: str | None = None
    # Either a list of node objects or the hash form {"host:port": weight}.
    nodes: Union[list[UpstreamNode], dict[str, int], None] = None


class UpstreamEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    value: UpstreamValue


class RegistryHost(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ip: str = ""
    port: int = 0
    healthy: bool = False
    metadata: dict[str, str] | None = None


class RegistryInstanceList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hosts: list[RegistryHost] = Field(default_factory=list)


class DecideRequest(BaseModel):
    upstream_id: str = Field(..., min_length=1)
    gray_name: str = Field("", description="Value sent as the gray-name header")


class DecideResponse(BaseModel):
    force_gray: bool
    reason: str
