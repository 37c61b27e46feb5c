"""Version information for the cloudsign package"""

__version__ = "0.1.0"
