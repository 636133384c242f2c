"""Roles and their permission lists."""
