"""
InvenTrack - multi-organization inventory management API
"""
__version__ = "1.0.0"
