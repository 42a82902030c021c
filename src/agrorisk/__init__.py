"""
agrorisk: crop phenology and FAO-56 dual-Kc soil water balance simulation
for agricultural risk analysis.
"""
__version__ = "0.1.0"
