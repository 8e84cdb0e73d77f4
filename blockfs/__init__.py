"""An inode-based block filesystem stored in a single disk image file."""

__version__ = "0.1.0"
__all__ = ["disk", "filesystem", "layout"]