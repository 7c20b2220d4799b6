from .listing import ScrapedListing

__all__ = ["ScrapedListing"]
