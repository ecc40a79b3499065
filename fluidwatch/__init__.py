"""FluidWatch: fluid balance and KDIGO urine-output monitoring."""

__version__ = "1.0.0"
