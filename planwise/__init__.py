"""
Planwise - on-device assistant action resolution.

Turns free-form user text into structured app actions with a local language
model, falling back to deterministic command parsing.
"""

__version__ = "0.3.0"
