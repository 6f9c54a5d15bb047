"""Blind A/B and ABX listening tests against a networked amplifier's presets."""
