"""Position parsing, ordering and merging of highlights"""
