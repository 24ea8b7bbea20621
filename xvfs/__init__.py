"""A small Unix-style file system over in-memory disk images, with an image builder and tools."""

__version__ = "0.1.0"