"""Customer portal login provisioning for the client-management app."""

__version__ = "1.0.0"
