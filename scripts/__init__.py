"""
Backend Scripts Module

This module contains utility scripts for local development.

Available scripts:
    - seed_data.py: Prints demo user tokens and creates sample submissions

Usage:
    python -m scripts.seed_data
"""
