"""
Application layer for fairdraw (command-line front end).
"""
