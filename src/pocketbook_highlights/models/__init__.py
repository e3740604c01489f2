"""Highlight data model"""
