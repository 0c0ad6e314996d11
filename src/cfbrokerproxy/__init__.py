"""Open Service Broker proxy in front of the Cloud Foundry Cloud Controller v2 API."""

__version__ = "0.1.0"
