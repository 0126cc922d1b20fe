"""Expansion preview.

Names and registers sub-targets for every dynamic target whose inputs are
already known, without running any target bodies.
"""
