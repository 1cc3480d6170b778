"""
Core package for the pairing tool.

Contains the shared result taxonomy (core.results) and the PairingToolApp
context (core.app) that owns every component and exposes the UI command
surface.
"""
