"""
torsnap: scheduled Tor page capture and webhook delivery.
"""

__version__ = "0.1.0"
