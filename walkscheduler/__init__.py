"""
walkscheduler - availability and booking admission for a dog-walking business.
"""

__version__ = "0.1.0"
