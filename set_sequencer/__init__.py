"""Harmonic-mixing transition scorer and DJ set sequencer."""

__version__ = "0.1.0"
