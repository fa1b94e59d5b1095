"""
potdwall

Apply a daily "picture of the day" feed image as the desktop wallpaper.
"""

__version__ = "0.3.0"
