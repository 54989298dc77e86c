"""
bookingslots - availability and booking core for appointment scheduling.
"""

__version__ = "0.1.0"
