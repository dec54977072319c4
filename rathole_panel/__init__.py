"""
Rathole Panel - a local control service for the rathole tunnel binary.

Supervises a single rathole process, captures its output into daily log
files with a live feed, and installs rathole releases.
"""

__version__ = "0.1.0"
