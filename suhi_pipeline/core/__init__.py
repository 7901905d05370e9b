"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants (class codes, scale factors, coefficients)
- exceptions: Custom exception hierarchy
"""
