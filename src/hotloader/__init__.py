"""hotloader - rebuild and restart an application whenever its sources change."""

__version__ = "0.1.0"
