"""
Tests for Chatyuk.
"""
