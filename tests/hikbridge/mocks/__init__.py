"""Test doubles for hikbridge tests."""

from tests.hikbridge.mocks.isapi import FakeIsapiClient, FakeIsapiStream
from tests.hikbridge.mocks.process import FakeProcess, FakeSpawner, FakeStreamReader

__all__ = [
    "FakeIsapiClient",
    "FakeIsapiStream",
    "FakeProcess",
    "FakeSpawner",
    "FakeStreamReader",
]
