from __future__ import annotations


class SteeringError(Exception):
    """Base for failures that make gray eligibility undeterminable."""


class ConfigFetchError(SteeringError):
    pass


class ConfigParseError(SteeringError):
    pass


class RegistryError(SteeringError):
    pass


class ProbeError(SteeringError):
    pass


class DeadlineExceeded(SteeringError):
    pass
