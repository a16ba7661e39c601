"""
QR code rendering for provider-issued payment payloads.
"""
from .renderer import QRImage, render

__all__ = ["QRImage", "render"]
