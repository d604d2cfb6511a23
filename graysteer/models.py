from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


GRAY_HEADER = "gray-name"
FORCE_GRAY = "force-gray"


@dataclass(frozen=True)
class ServiceBacked:
    service_name: str


@dataclass(frozen=True)
class NodeBacked:
    host: str
    port: str


UpstreamDescriptor = Union[ServiceBacked, NodeBacked]


@dataclass(frozen=True)
class ServiceInstance:
    healthy: bool
    metadata: dict[str, str] = field(default_factory=dict)
    ip: str = ""
    port: int = 0


class DecisionState(str, Enum):
    IDLE = "idle"
    RESOLVING_CONFIG = "resolving_config"
    PROBING = "probing"
    DECIDED = "decided"


@dataclass(frozen=True)
class SteeringDecision:
    force_gray: bool
    reason: str = ""

    @classmethod
    def no_gray(cls, reason: str) -> "SteeringDecision":
        return cls(force_gray=False, reason=reason)
