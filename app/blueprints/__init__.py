"""
Model Lifecycle Tracking Service
Blueprint registry.
"""
