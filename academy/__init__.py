"""
Academy Backend Package
Online course platform: student dashboard and admin back office
"""

__version__ = "1.0.0"
__author__ = "Academy Team"
