"""Pytest wiring: each test module redirects HOME at import time; restore it per module."""

import os

import pytest


@pytest.fixture(autouse=True)
def _module_test_home(request, monkeypatch):
    test_home = getattr(request.module, "TEST_HOME", None)
    if test_home is not None:
        monkeypatch.setenv("HOME", test_home)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    yield
