"""feedmute: hide feed posts whose images look like user-muted images."""

__version__ = "0.1.0"
