"""
Traffic probe for watching how requests split across the blue and green slots.
"""

from .traffic import ProbeResult, TrafficProbe

__all__ = ["ProbeResult", "TrafficProbe"]
