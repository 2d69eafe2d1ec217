"""dapper - Dockerfile-defined build and run environments."""

__version__ = "0.1.0"
