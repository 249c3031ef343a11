"""Tests for remote_builder.network module."""

from __future__ import annotations

from xml.etree.ElementTree import tostring

import pytest

from remote_builder.exceptions import ConfigurationError
from remote_builder.models import NicConfig
from remote_builder.network import render_network_element


class TestRenderNetworkElement:
    def test_user_mode_nat(self):
        iface = render_network_element(NicConfig(mode="user", mac_address="52:54:00:AA:BB:CC"))
        xml = tostring(iface, encoding="unicode")
        assert xml.startswith('<interface type="user">')
        assert iface.find("mac").get("address") == "52:54:00:aa:bb:cc"
        assert iface.find("model").get("type") == "virtio"

    def test_unsupported_mode_raises(self):
        with pytest.raises(ConfigurationError, match="Unsupported network mode: bridge"):
            render_network_element(NicConfig(mode="bridge", mac_address="52:54:00:aa:bb:cc"))

    def test_missing_mac_raises(self):
        with pytest.raises(ConfigurationError, match="no MAC address"):
            render_network_element(NicConfig(mode="user"))
