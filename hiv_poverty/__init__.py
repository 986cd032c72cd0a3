"""
HIV burden concentration and poverty association analysis.
"""

__version__ = "0.1.0"
