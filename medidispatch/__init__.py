"""
MediDispatch: emergency dispatch allocation backend.
"""

__version__ = "1.0.0"
