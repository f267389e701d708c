"""
Shop Orbit ERP authentication and authorization service.
"""

__version__ = "1.0.0"
