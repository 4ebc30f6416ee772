"""Errors raised by the output sinks."""


class PersistenceFailed(Exception):
    """Writing the hosts file or the DNS records failed for this cycle."""
    pass
