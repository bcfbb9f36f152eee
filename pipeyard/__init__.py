"""
Pipe Yard - pipe storage yard backend
"""

__version__ = "1.0.0"
