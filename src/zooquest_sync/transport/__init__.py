# SPDX-License-Identifier: MIT
"""Transport port and its HTTP implementation."""

from .http import HttpTransport
from .protocols import TransportPort, WriteRequest


__all__ = ["HttpTransport", "TransportPort", "WriteRequest"]
