"""
Worker process and built-in job handlers.
"""
