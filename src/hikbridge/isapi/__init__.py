"""Hikvision ISAPI client layer."""

from hikbridge.isapi.client import Credentials, IsapiClient, IsapiStream
from hikbridge.isapi.digest import DigestAuthenticator, DigestChallenge, parse_challenge
from hikbridge.isapi.discovery import DiscoveredChannel, NvrDeviceInfo, NvrDiscovery
from hikbridge.isapi.xml import parse_xml

__all__ = [
    "Credentials",
    "DigestAuthenticator",
    "DigestChallenge",
    "DiscoveredChannel",
    "IsapiClient",
    "IsapiStream",
    "NvrDeviceInfo",
    "NvrDiscovery",
    "parse_challenge",
    "parse_xml",
]
