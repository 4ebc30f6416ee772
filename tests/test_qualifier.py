"""Tests for name qualification."""
from datetime import datetime, timezone

from unifi_dns_scraper.reconcile.qualifier import qualified_names, qualify
from unifi_dns_scraper.reconcile.schema import Entry

NOW = datetime(2023, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestQualifiedNames:
    """Tests for qualified name generation."""

    def test_single_name_two_domains(self):
        """One name under two domains, in domain order."""
        assert qualified_names(["host1"], ["example.com", "local"]) == [
            "host1.example.com",
            "host1.local",
        ]

    def test_domain_major_order(self):
        """All names for the first domain come before the second domain."""
        assert qualified_names(["n1", "n2"], ["d1", "d2"]) == [
            "n1.d1", "n2.d1", "n1.d2", "n2.d2",
        ]

    def test_lowercased(self):
        """Names and domains are lower-cased."""
        assert qualified_names(["Laptop"], ["Example.COM"]) == ["laptop.example.com"]

    def test_domain_dots_stripped(self):
        """Leading and trailing dots on a domain are ignored."""
        assert qualified_names(["nas"], [".lan."]) == ["nas.lan"]

    def test_count(self):
        """One qualified name per name and domain pair."""
        result = qualified_names(["a", "b", "c"], ["x", "y"])
        assert len(result) == 6

    def test_no_domains(self):
        """Without domains there is nothing to qualify."""
        assert qualified_names(["a"], []) == []


class TestQualify:
    """Tests for qualifying entries."""

    def test_qualify_entry(self):
        """Qualified names are stored on the entry."""
        entry = Entry.create("192.168.1.1", ["router", "gw"], NOW)
        qualify(entry, ["home.arpa"])
        assert entry.qualified_names == ["router.home.arpa", "gw.home.arpa"]

    def test_requalify_replaces(self):
        """Qualifying twice does not append duplicates."""
        entry = Entry.create("192.168.1.1", ["router"], NOW)
        qualify(entry, ["lan"])
        entry.names = ["gw"]
        qualify(entry, ["lan"])
        assert entry.qualified_names == ["gw.lan"]
