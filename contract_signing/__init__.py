"""WebMarcas contract generation, digital signature and certification"""

__version__ = "0.1.0"
