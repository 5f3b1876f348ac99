"""Student Pool: carpool rides, join requests and notifications."""

__version__ = "1.0.0"
