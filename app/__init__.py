"""
HTTP layer for the CNAB import service.
"""
