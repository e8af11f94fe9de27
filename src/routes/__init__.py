"""
API Routes Package
==================
Shared pieces of the HTTP boundary kept out of api.py.

Modules:
  helpers  - JSON-safety conversion for analysis results
"""
