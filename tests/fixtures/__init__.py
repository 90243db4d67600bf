"""Test fixtures for unitlink tests.

Provides:
- Fake scan and query collaborators
- A controllable clock and an instant sleep
- Sample linked-unit records
"""

from .collaborators import *
from .units import *
