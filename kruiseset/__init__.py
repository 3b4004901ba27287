"""Offline editing of images, resources, selectors, service accounts and subjects in workload manifests."""

__version__ = "0.1.0"