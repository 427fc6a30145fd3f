"""
dynconfig services

- config/ - Session polling, flattening and the typed configuration cache
"""
