"""
IPTVPlay Test Suite
"""
