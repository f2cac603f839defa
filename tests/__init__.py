"""
MXL Toolbox Test Suite

Tests for the Gaussian mixing distribution, the triangular-matrix and
finite-difference utilities, the exception hierarchy and the configuration
system.
"""
