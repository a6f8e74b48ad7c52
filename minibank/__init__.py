"""
minibank

A small account service: accounts secured by a hashed password, signed
session tokens, and atomic balance transfers between accounts.
"""

__version__ = "1.0.0"
