"""
Utility modules for the CMA engine.
"""

from .formatting import format_price, format_signed_price, round_half_up
from .config import Config

__all__ = ["format_price", "format_signed_price", "round_half_up", "Config"]
