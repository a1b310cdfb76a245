"""Deployment package: traffic shifting and canary health control."""
__all__ = ['traffic_shifter', 'canary']
