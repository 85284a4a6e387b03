"""ReClothes confidential settlement: private actions correlated with public settlements."""

__version__ = "1.0.0"
