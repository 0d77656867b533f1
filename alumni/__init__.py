"""
Alumni engagement platform backend
"""
