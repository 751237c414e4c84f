"""relctl - release controller for containerized deployments."""

__version__ = "0.1.0"
