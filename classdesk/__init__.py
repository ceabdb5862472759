"""
ClassDesk - anonymous in-class questions and help calls, triaged live by SAs.
"""

__version__ = "0.3.0"
