"""
Tab definitions, visibility-filtered collections and per-instance state.
"""
