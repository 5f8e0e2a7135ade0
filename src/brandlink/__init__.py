"""BrandLink: backend for brands, manufacturers and NFT product certificates."""

__version__ = "1.0.0"
