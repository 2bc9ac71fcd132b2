"""
Command line interface for Catalog Engine.
"""
