"""
Tests package for the Argo CD operator read path.

Contains:
- unit/: Unit tests for individual components, with in-memory fakes
"""
