"""
Persistence package for the Restaurants Service.
"""
