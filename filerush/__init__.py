"""
filerush - serves files of a read-only directory over HTTP with different
I/O strategies, to see how they compare under load
"""

__version__ = '0.1.0'
