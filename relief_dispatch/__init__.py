# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Relief dispatch: volunteer matching and assignment for emergency incidents."""

__version__ = "1.0.0"
