"""Read and modify HFS+ volume images: structures, forks, bitmap, attributes and tar walking."""

__version__ = "0.1.0"
__all__ = ["structures", "volume", "xattr", "hfslib"]