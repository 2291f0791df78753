"""
HTTP surface of the engine.
"""
