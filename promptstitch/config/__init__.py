"""
promptstitch/config - Engine configuration and tier policy.
"""
