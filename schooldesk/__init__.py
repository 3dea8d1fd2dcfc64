"""School administration dashboard with user-defined custom tabs."""

__version__ = "1.0.0"
