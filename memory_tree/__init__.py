"""
Memory Tree: photo memories hung on a Christmas tree board
"""
__version__ = "0.1.0"
