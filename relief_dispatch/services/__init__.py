# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Business services."""
