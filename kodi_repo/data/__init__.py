"""
Access to the on-disk repository listing.

This package is responsible for:
* Reading the addon ids declared by an addons.xml listing.
* Generating that listing from a directory of addon sources.
"""
