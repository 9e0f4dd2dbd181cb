from parlbm import lbm

__version__ = "0.1.0"
