"""
Local storage: the confined storage root and the package metadata store.
"""
