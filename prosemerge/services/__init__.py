"""
Services: hashing, embedding backends, file I/O and settings.
"""
