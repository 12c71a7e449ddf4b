"""
gatedfeed: feed records from challenge-protected news sites.
"""

__version__ = "0.1.0"
