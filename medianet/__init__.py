"""Tag-based media transport wire format, protocol messages, packet pipes and relay logic."""

__version__ = "0.1.0"