"""Tests for ID4me discovery: TXT record parsing, DNS walk-up, openid-configuration fetch."""
from unittest.mock import patch

import dns.resolver
import httpx
import pytest

from id4me_login.discovery import (
    discover,
    get_openid_config,
    normalize_domain,
    openid_configuration_url,
    parse_txt_record,
)
from id4me_login.exceptions import InvalidDomainError, OpenIdConfigError
from id4me_login.tests.helpers import MockResponse

RECORD = "v=OID1;iss=auth.example.test;clp=agent.example.test"


def test_parse_txt_record():
    assert parse_txt_record(RECORD) == {
        "v": "OID1",
        "iss": "auth.example.test",
        "clp": "agent.example.test",
    }


def test_parse_txt_record_tolerates_spaces_and_empty_parts():
    assert parse_txt_record(" v=OID1 ; iss = auth.example.test ;; ") == {"v": "OID1", "iss": "auth.example.test"}


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("example.id4me.test", "example.id4me.test"),
        ("  Example.ID4me.Test. ", "example.id4me.test"),
        ("bücher.example", "xn--bcher-kva.example"),
    ],
)
def test_normalize_domain(raw, expected):
    assert normalize_domain(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", None, "localhost", "not a domain", "-bad.example", "a..b", "x" * 64 + ".test"])
def test_normalize_domain_rejects(raw):
    with pytest.raises(InvalidDomainError):
        normalize_domain(raw)


def test_discover_direct_record():
    records = {"_openid.example.id4me.test": [RECORD]}
    with patch("id4me_login.discovery._lookup_txt", side_effect=lambda name: records.get(name, [])):
        assert discover("example.id4me.test") == "auth.example.test"


def test_discover_walks_up_to_parent_domain():
    looked_up = []

    def lookup(name):
        looked_up.append(name)
        return [RECORD] if name == "_openid.id4me.test" else []

    with patch("id4me_login.discovery._lookup_txt", side_effect=lookup):
        assert discover("alice.example.id4me.test") == "auth.example.test"
    assert looked_up == [
        "_openid.alice.example.id4me.test",
        "_openid.example.id4me.test",
        "_openid.id4me.test",
    ]


def test_discover_skips_records_of_other_versions():
    records = {"_openid.example.id4me.test": ["v=spf1 -all", "v=OID2;iss=wrong.test", RECORD]}
    with patch("id4me_login.discovery._lookup_txt", side_effect=lambda name: records.get(name, [])):
        assert discover("example.id4me.test") == "auth.example.test"


def test_discover_accepts_legacy_iau():
    records = {"_openid.example.id4me.test": ["v=OID1;iau=legacy.example.test"]}
    with patch("id4me_login.discovery._lookup_txt", side_effect=lambda name: records.get(name, [])):
        assert discover("example.id4me.test") == "legacy.example.test"


def test_discover_no_record_raises():
    with patch("id4me_login.discovery._lookup_txt", return_value=[]) as lookup:
        with pytest.raises(InvalidDomainError):
            discover("nothing.example.test")
    # Never queries a bare TLD
    assert "_openid.test" not in [c.args[0] for c in lookup.call_args_list]


def test_discover_invalid_input_makes_no_lookup():
    with patch("id4me_login.discovery._lookup_txt") as lookup:
        with pytest.raises(InvalidDomainError):
            discover("no spaces allowed")
    lookup.assert_not_called()


def test_lookup_txt_joins_character_strings():
    class Rdata:
        strings = (b"v=OID1;iss=auth.", b"example.test")

    with patch("id4me_login.discovery.dns.resolver.Resolver") as resolver_cls:
        resolver_cls.return_value.resolve.return_value = [Rdata()]
        assert discover("example.id4me.test") == "auth.example.test"


def test_lookup_txt_dns_errors_mean_no_record():
    with patch("id4me_login.discovery.dns.resolver.Resolver") as resolver_cls:
        resolver_cls.return_value.resolve.side_effect = dns.resolver.NXDOMAIN()
        with pytest.raises(InvalidDomainError):
            discover("example.id4me.test")


def test_openid_configuration_url():
    assert openid_configuration_url("auth.example.test") == "https://auth.example.test/.well-known/openid-configuration"
    assert openid_configuration_url("https://auth.example.test/") == "https://auth.example.test/.well-known/openid-configuration"


def test_get_openid_config_success():
    doc = {
        "issuer": "https://auth.example.test",
        "authorization_endpoint": "https://auth.example.test/login",
        "token_endpoint": "https://auth.example.test/token",
        "registration_endpoint": "https://auth.example.test/clients",
        "jwks_uri": "https://auth.example.test/jwks.json",
    }
    with patch("id4me_login.discovery.httpx.get", return_value=MockResponse(200, doc)) as get:
        config = get_openid_config("auth.example.test")
    assert get.call_args.args[0] == "https://auth.example.test/.well-known/openid-configuration"
    assert config.authorization_endpoint == "https://auth.example.test/login"
    assert config.token_endpoint == "https://auth.example.test/token"
    assert config.registration_endpoint == "https://auth.example.test/clients"
    assert config.userinfo_endpoint is None


def test_get_openid_config_missing_token_endpoint():
    doc = {"issuer": "x", "authorization_endpoint": "https://auth.example.test/login"}
    with patch("id4me_login.discovery.httpx.get", return_value=MockResponse(200, doc)):
        with pytest.raises(OpenIdConfigError):
            get_openid_config("auth.example.test")


def test_get_openid_config_http_error_status():
    with patch("id4me_login.discovery.httpx.get", return_value=MockResponse(404, {"error": "not found"})):
        with pytest.raises(OpenIdConfigError):
            get_openid_config("auth.example.test")


def test_get_openid_config_not_json():
    with patch("id4me_login.discovery.httpx.get", return_value=MockResponse(200, None, text="<html>")):
        with pytest.raises(OpenIdConfigError):
            get_openid_config("auth.example.test")


def test_get_openid_config_transport_error_is_invalid_domain():
    with patch("id4me_login.discovery.httpx.get", side_effect=httpx.ConnectError("refused")):
        with pytest.raises(InvalidDomainError):
            get_openid_config("auth.example.test")
