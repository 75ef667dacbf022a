"""
Persistence package for MediDispatch backend.
"""
