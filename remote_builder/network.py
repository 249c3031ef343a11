"""Network XML generation for nixos-remote-builder."""

from __future__ import annotations

from xml.etree.ElementTree import Element, SubElement

from remote_builder.exceptions import ConfigurationError
from remote_builder.models import NicConfig


def render_network_element(config: NicConfig) -> Element:
    """Build a libvirt interface element for a NAT-translated NIC.

    User-mode networking gives the guest a private address behind the
    host's address translation; nothing is exposed on the host.
    """
    if config.mode != "user":
        raise ConfigurationError(f"Unsupported network mode: {config.mode}")
    if not config.mac_address:
        raise ConfigurationError("NIC has no MAC address")

    iface = Element("interface", type="user")
    SubElement(iface, "mac", address=config.mac_address.lower())
    SubElement(iface, "model", type=config.model)
    return iface
