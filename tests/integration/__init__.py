# SPDX-License-Identifier: MIT
"""Integration tests for zooquest-sync.

These tests drive the coordinator, cache, pending queue and transport
together through complete scenarios. No real network is used.
"""
