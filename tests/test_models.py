"""
Tests for profile and tunnel models
"""
import pytest

from axiom.core.exceptions import ConfigError
from axiom.domain.profile import ConnectionProfile
from axiom.domain.tunnel import Endpoint, TunnelSession, TunnelState


def test_profile_usability():
    assert ConnectionProfile(identity="id", pbk="key").is_usable()
    assert not ConnectionProfile(identity="", pbk="key").is_usable()
    assert not ConnectionProfile(identity="id", pbk="").is_usable()


def test_profile_round_trip_through_dict(profile):
    assert ConnectionProfile.from_dict(profile.to_dict()) == profile


def test_profile_from_legacy_dict():
    profile = ConnectionProfile.from_dict({
        "uuid": "abc", "address": "h", "port": "bad", "sni": "s", "pbk": "k", "sid": "", "flow": ""
    })
    
    assert profile.identity == "abc"
    assert profile.port == 443


@pytest.mark.parametrize("port", [0, 70000, -1, "70000", None])
def test_stored_port_out_of_range_falls_back(port):
    profile = ConnectionProfile.from_dict({"identity": "id", "pbk": "k", "port": port})
    
    assert profile.port == 443


def test_stored_port_in_range_is_kept():
    assert ConnectionProfile.from_dict({"identity": "id", "pbk": "k", "port": "8443"}).port == 8443


def test_profile_is_immutable(profile):
    with pytest.raises(AttributeError):
        profile.pbk = "other"


def test_masked_secret(profile):
    assert profile.masked("pbk") == "KEYVALUE..."
    assert profile.masked("identity", visible=3) == "abc..."
    assert ConnectionProfile(identity="").masked("identity") == ""


@pytest.mark.parametrize("raw,expected", [
    ("usa3.example.com:4443", Endpoint("usa3.example.com", 4443)),
    ("[2001:db8::1]:443", Endpoint("2001:db8::1", 443)),
])
def test_endpoint_parse(raw, expected):
    assert Endpoint.parse(raw) == expected


@pytest.mark.parametrize("raw", ["example.com", ":443", "host:port", "host:0", "host:70000"])
def test_endpoint_parse_rejects(raw):
    with pytest.raises(ConfigError):
        Endpoint.parse(raw)


def test_session_to_dict():
    data = TunnelSession(state=TunnelState.FAILED, last_error="boom").to_dict()
    
    assert data["state"] == "Failed"
    assert data["capture"] is None
    assert data["last_error"] == "boom"
