"""
CLI sub-command modules.
"""
