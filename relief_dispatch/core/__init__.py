# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Configuration, logging, persistence bootstrap, errors and authorization."""
