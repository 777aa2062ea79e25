"""Cross-store COD risk scoring and checkout enforcement."""

__version__ = "0.1.0"
