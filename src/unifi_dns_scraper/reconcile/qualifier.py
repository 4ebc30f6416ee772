"""Expand short host names into fully-qualified names."""
from typing import Iterable

from .schema import Entry


def normalize_domain(domain: str) -> str:
    return domain.strip().strip(".").lower()


def qualified_names(names: Iterable[str], domains: Iterable[str]) -> list[str]:
    """Every name under every domain, domain-major.

    Domains ["d1", "d2"] and names ["n1", "n2"] give
    n1.d1, n2.d1, n1.d2, n2.d2.
    """
    names = list(names)
    result = []
    for domain in domains:
        domain = normalize_domain(domain)
        if not domain:
            continue
        for name in names:
            result.append(f"{name}.{domain}".lower())
    return result


def qualify(entry: Entry, domains: Iterable[str]) -> Entry:
    """Regenerate an entry's qualified names from its current names."""
    entry.qualified_names = qualified_names(entry.names, domains)
    return entry
