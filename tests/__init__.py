"""
Test suite for the quotation workspace backend.
"""
