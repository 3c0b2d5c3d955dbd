"""subtunnel - expose local HTTP services under random subpaths of one port."""

__version__ = "0.1.0"
