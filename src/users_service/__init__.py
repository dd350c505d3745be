"""
Users CRUD service: list, read, create, replace and delete user documents
"""

__version__ = "1.0.0"
