"""blockshipper - Ship immutable local data blocks to object storage exactly once."""

__version__ = "0.1.0"
