"""
gmpflow - GMP-compliant production scheduling for a TCM processing shop floor.
"""

__version__ = "0.1.0"
