"""
Core grammar machinery: IR, identifiers, recognition, validation and
simplification.
"""
