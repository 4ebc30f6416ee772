"""Output sinks for the reconciled host list."""
from .errors import PersistenceFailed
from .hostsfile import write_hosts_file
from .database import RecordStore, Record, Domain, UnifiHost, database_url

__all__ = [
    "PersistenceFailed",
    "write_hosts_file",
    "RecordStore",
    "Record",
    "Domain",
    "UnifiHost",
    "database_url",
]
