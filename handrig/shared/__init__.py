"""Shared fixtures: synthetic avatars, detections and cameras."""
