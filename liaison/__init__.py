"""Liaison: live support session core.

Coordinates conversations between a visitor, an automated responder and
human operators, keeping the visitor widget, operator consoles and the
shared dashboard synchronized in real time.
"""

__version__ = "0.1.0"
