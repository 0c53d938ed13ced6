"""
Shared utilities: console/logging setup and filesystem helpers.
"""
