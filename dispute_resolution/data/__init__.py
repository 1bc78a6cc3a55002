"""Data module - JSON file storage and sample data."""

from .storage import Storage
from .seed import seed_data, reset_data

__all__ = ["Storage", "seed_data", "reset_data"]
