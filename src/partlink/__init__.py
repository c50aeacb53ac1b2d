"""PartLink - Rapprochement d'un inventaire magasin et d'un catalogue fournisseur."""

from partlink.config import ConfigError, ConfigFileError, PartLinkError
from partlink.stores import StoreUnavailableError

__all__ = [
    "__version__",
    "PartLinkError",
    "ConfigError",
    "ConfigFileError",
    "StoreUnavailableError",
]

__version__ = "0.1.0"
