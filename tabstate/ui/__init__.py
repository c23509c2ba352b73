"""
Streamlit host adapter: session state, query params and shared services.
"""
