"""
Voice model bundle pipeline, content-addressed storage gateway and synthesis dispatcher.
"""

__version__ = "0.4.0"
