"""
Blue-green slot rotation.

- rotator: pure transition function `rotate(prior, version)`
- deployment: synchronous phase that rotates the primed state and builds
  both slots
"""

from .deployment import BlueGreenDeployment, Builder
from .rotator import rotate

__all__ = ["BlueGreenDeployment", "Builder", "rotate"]
