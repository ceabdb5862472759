"""
Engines - course management, profiles, message composition and the
multi-viewer coordination core.
"""
