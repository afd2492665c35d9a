"""Bridges to external collaborators — registry protocol and OpenPGP."""
