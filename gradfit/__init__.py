"""Gradient-descent line fitting on synthetic data."""
