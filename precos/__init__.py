"""Grocery price comparison back end."""
