"""Inspect and author spatial (stereoscopic) photos.

Importing the package registers the pillow_heif opener so that Pillow can
probe and decode HEIC/HEIF containers.
"""

from pillow_heif import register_heif_opener

register_heif_opener()

__version__ = "0.1.0"
