"""File handling helpers"""
