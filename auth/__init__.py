"""auth/ -- Authentication package for KeyDash.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, web/, core/, dashboard/, or cache/.
api/ and web/ import from auth/, not the other way around.
"""
