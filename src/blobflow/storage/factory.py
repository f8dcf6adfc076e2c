"""Factory for creating gateway instances."""

from pathlib import Path

from ..core import GatewayPolicy
from ..gateway_types import MutationGateway
from .fs import FilesystemGateway


def make_gateway(policy: GatewayPolicy) -> MutationGateway:
    """
    Create gateway instance based on policy.

    Args:
        policy: Gateway policy configuration

    Returns:
        MutationGateway instance

    Raises:
        ValueError: If configuration is invalid
        NotImplementedError: If provider is not supported
    """
    if policy.provider == "fs":
        if not policy.root:
            raise ValueError("gateway.root (directory path) required for filesystem gateway")
        return FilesystemGateway(Path(policy.root))

    raise NotImplementedError(f"Provider {policy.provider} not supported")
