"""Storage package providing concrete gateways."""

from .factory import make_gateway
from .fs import FilesystemGateway

__all__ = ["FilesystemGateway", "make_gateway"]
