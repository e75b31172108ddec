"""Source fetchers bundled with the package.

Live platform clients are deployed separately; JsonFileFetcher reads the
records they export so they can be staged through the normal job flow.
"""

from mixcatalog.providers.fetchers.json_file_fetcher import JsonFileFetcher

__all__ = ["JsonFileFetcher"]
