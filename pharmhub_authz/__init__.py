"""
Pharmacy Hub authorization kernel.
"""

__version__ = "1.0.0"
