"""Partner inventory feed ingestion and synchronization for the Carzo vehicle store."""

__version__ = "0.1.0"
