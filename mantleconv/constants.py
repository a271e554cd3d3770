"""Physical constants and reference values for the mantle convection models.

Values are provided in SI units.  Depths are positive downwards and measured
from the surface of the model domain.
"""
from __future__ import annotations


# Seconds in a Julian year (365.25 days)
SECONDS_PER_YEAR: float = 365.25 * 24 * 3600.0

# Universal gas constant used by the reference creep law (J mol^-1 K^-1)
R_GAS: float = 8.3145

# Standard gravity (m s^-2)
GRAVITY: float = 9.81

# Depth of the core-mantle boundary (m)
MANTLE_DEPTH: float = 2890.0e3

# Base of the upper mantle / transition zone (m)
UPPER_MANTLE_DEPTH: float = 660.0e3

# Top of the lowermost mantle layer (m)
LOWER_MANTLE_DEPTH: float = 2740.0e3

# Viscosity correction factors of the three depth bands
UPPER_MANTLE_FACTOR: float = 1.0
LOWER_MANTLE_FACTOR: float = 10.0
LOWERMOST_MANTLE_FACTOR: float = 0.1

# Reference plate age of the half-space cooling profile (s)
HALF_SPACE_AGE: float = 100.0e6 * SECONDS_PER_YEAR

