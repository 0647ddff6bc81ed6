# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests running validation and extraction end to end.

These tests drive the service, the MCP tools and the CLI against a small
knowledge base on disk.
"""
