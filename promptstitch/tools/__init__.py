"""
promptstitch/tools - Command-line entry points.
"""
