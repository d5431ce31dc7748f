"""Parking layout configuration and real-time occupancy synchronization."""

__version__ = "1.0.0"
