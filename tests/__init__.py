"""
Overlay Compositor Test Suite

Structure:
- unit/: classifier, extent, scene mapping, tile planning, composer, session
- integration/: HTTP API and pipeline CLI end to end (network mocked)
"""
