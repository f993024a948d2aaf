"""Operator tooling for chainward."""
