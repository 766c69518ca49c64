"""Pricing backend of the FDM engine."""
