"""
Kernel - persistence models, store capabilities, identity and audit log.
"""
