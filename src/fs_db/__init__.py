"""fs-db: detect and migrate the on-disk layout of a file-based application store."""

__version__ = "1.0.7"
