"""planwise.core

Configuration, logging, errors and the action-resolution pipeline.
"""
