"""Test suite for the tabex package.

This package contains unit and integration tests validating token
resolution, filters, flow control, macro expansion, repeat-until loops
and the execution summary of YAML scripts.
"""
