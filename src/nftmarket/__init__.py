"""nftmarket — escrowed direct-sale and auction engine for unique items."""

__version__ = "0.1.0"
