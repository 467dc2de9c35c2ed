"""
Chain primitives: hashing, serialization, scripts, addresses and time locks.
"""
