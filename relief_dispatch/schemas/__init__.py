# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Request / response schemas."""
