"""
Route modules for MediDispatch API.
"""
