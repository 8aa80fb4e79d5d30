"""
V.E.T Collar Bridge - relays collar vitals from a serial port to the backend API.
"""
__version__ = "0.1.0"
