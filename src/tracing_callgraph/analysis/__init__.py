"""Queries and rendering for recorded call graphs."""
