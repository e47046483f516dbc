"""LoginGuard: login risk engine with second factors and anomaly-gated verification."""

__version__ = "0.1.0"
