"""
Project Downloader.

Materializes remote project source trees onto local disk, either by
cloning a version-controlled repository or by safely unpacking an
uploaded archive, and classifies the result's primary language.
"""

__version__ = "1.0.0"
__author__ = "Project Downloader"
