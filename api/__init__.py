"""
Query Verifier API
==================

HTTP service for running control/test verifications.
"""

__version__ = "0.1.0"
