"""
modwallet command line tools.
"""
