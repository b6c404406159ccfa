"""
Command line interface for Staffel
"""
