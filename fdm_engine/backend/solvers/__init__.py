"""Finite-difference rollback and the Black-Scholes solver."""
