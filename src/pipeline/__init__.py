"""
Pipeline Package
================
Hand-off shapes built on top of a finished analysis pass.

Modules:
  insights_payload - fixed-schema day slice for the external insight generator
"""
