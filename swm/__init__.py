"""Solid-waste-management backend with a reviewed change workflow."""
