"""provenant - anchor product claims on a consensus log and verify them."""

from .errors import ProvenantError
from .version import __version__

__all__ = ["ProvenantError", "__version__"]
