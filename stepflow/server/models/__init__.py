"""Pydantic request/response models for the stepflow API."""
