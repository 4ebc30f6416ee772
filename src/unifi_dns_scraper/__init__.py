"""Publish UniFi controller clients and devices as a hosts file and DNS records."""

__version__ = "0.3.0"
