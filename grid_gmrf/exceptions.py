"""Custom exceptions for grid_gmrf package"""

class GmrfError(Exception):
    """Base exception for grid_gmrf package"""
    pass

class DomainError(GmrfError):
    """Raised for malformed or too small grid/graph domains"""
    pass

class UnsupportedConfigurationError(GmrfError):
    """Raised when a (domain kind, order, circular) combination has no construction rule"""
    pass

class DimensionMismatchError(GmrfError):
    """Raised when an array does not match the dimension of the distribution"""
    pass

class NotPositiveDefiniteError(GmrfError):
    """Raised when a structure matrix or scale cannot define a proper precision matrix"""
    pass
